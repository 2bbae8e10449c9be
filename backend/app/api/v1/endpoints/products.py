from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_db
from backend.app.db.models.models_v1 import Category, OrderItem, Product, Request, Supplier
from backend.app.schemas.catalog import ProductCreate, ProductRead, ProductUpdate
from backend.services import stock_ledger
from backend.services.access import ANY_ROLE, WAREHOUSE_ROLES, Actor, require_role
from backend.services.errors import commit_or_raise

router = APIRouter(prefix="/products")

REQUIRED_FIELDS = ("sku", "name", "quantity", "alert_level", "price", "category_id")


def _read(p: Product) -> ProductRead:
    return ProductRead.model_validate(p).model_copy(update={"low_stock": stock_ledger.is_low_stock(p)})


def _check_refs(db: Session, category_id: int | None, supplier_id: int | None) -> None:
    if category_id is not None and not db.get(Category, category_id):
        raise HTTPException(status_code=404, detail=f"Category {category_id} not found")
    if supplier_id is not None and not db.get(Supplier, supplier_id):
        raise HTTPException(status_code=404, detail=f"Supplier {supplier_id} not found")


def _get(db: Session, product_id: int) -> Product:
    p = db.get(Product, product_id)
    if not p:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    return p


@router.get("", response_model=list[ProductRead])
def list_products(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ANY_ROLE, "list products")
    rows = db.execute(select(Product).order_by(Product.sku)).scalars().all()
    return [_read(p) for p in rows]


@router.get("/low-stock", response_model=list[ProductRead])
def list_low_stock(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ANY_ROLE, "list low stock")
    return [_read(p) for p in stock_ledger.list_low_stock(db)]


@router.get("/{product_id}", response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ANY_ROLE, "read products")
    return _read(_get(db, product_id))


@router.post("", response_model=ProductRead, status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, WAREHOUSE_ROLES, "create products")

    exists = db.execute(select(Product).where(Product.sku == payload.sku)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="SKU already exists")
    _check_refs(db, payload.category_id, payload.supplier_id)

    p = Product(**payload.model_dump())
    db.add(p)
    commit_or_raise(db, "creating product")
    db.refresh(p)
    return _read(p)


@router.put("/{product_id}", response_model=ProductRead)
def update_product(
    product_id: int,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    require_role(actor, WAREHOUSE_ROLES, "update products")
    p = _get(db, product_id)

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No field to update")
    missing = sorted(f for f in REQUIRED_FIELDS if f in changes and changes[f] is None)
    if missing:
        raise HTTPException(status_code=400, detail=f"Fields cannot be null: {', '.join(missing)}")
    if "sku" in changes and changes["sku"] != p.sku:
        taken = db.execute(select(Product.id).where(Product.sku == changes["sku"])).first()
        if taken:
            raise HTTPException(status_code=409, detail="SKU already exists")
    _check_refs(db, changes.get("category_id"), changes.get("supplier_id"))

    for field, value in changes.items():
        setattr(p, field, value)
    commit_or_raise(db, f"updating product {product_id}")
    db.refresh(p)
    return _read(p)


@router.delete("/{product_id}", status_code=204)
def delete_product(product_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, WAREHOUSE_ROLES, "delete products")
    p = _get(db, product_id)

    in_orders = db.execute(select(func.count(OrderItem.id)).where(OrderItem.product_id == product_id)).scalar_one()
    in_requests = db.execute(select(func.count(Request.id)).where(Request.product_id == product_id)).scalar_one()
    if in_orders or in_requests:
        raise HTTPException(status_code=409, detail="Product is referenced by orders or requests")

    db.delete(p)
    commit_or_raise(db, f"deleting product {product_id}")
    return Response(status_code=204)
