from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_db
from backend.app.db.models.models_v1 import Order, Supplier
from backend.app.schemas.catalog import SupplierCreate, SupplierRead, SupplierUpdate
from backend.services.access import ADMIN_ONLY, ANY_ROLE, Actor, require_role
from backend.services.errors import commit_or_raise
from backend.services.notifications import is_valid_email

router = APIRouter(prefix="/suppliers")


def _get(db: Session, supplier_id: int) -> Supplier:
    s = db.get(Supplier, supplier_id)
    if not s:
        raise HTTPException(status_code=404, detail=f"Supplier {supplier_id} not found")
    return s


@router.get("", response_model=list[SupplierRead])
def list_suppliers(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ANY_ROLE, "list suppliers")
    rows = db.execute(select(Supplier).order_by(Supplier.name)).scalars().all()
    return [SupplierRead.model_validate(s) for s in rows]


@router.get("/{supplier_id}", response_model=SupplierRead)
def get_supplier(supplier_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ANY_ROLE, "read suppliers")
    return SupplierRead.model_validate(_get(db, supplier_id))


@router.post("", response_model=SupplierRead, status_code=201)
def create_supplier(payload: SupplierCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ADMIN_ONLY, "create suppliers")
    if not is_valid_email(payload.email):
        raise HTTPException(status_code=400, detail="Invalid supplier email")

    exists = db.execute(select(Supplier).where(Supplier.name == payload.name)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="Supplier already exists")

    s = Supplier(**payload.model_dump())
    db.add(s)
    commit_or_raise(db, "creating supplier")
    db.refresh(s)
    return SupplierRead.model_validate(s)


@router.put("/{supplier_id}", response_model=SupplierRead)
def update_supplier(
    supplier_id: int,
    payload: SupplierUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    require_role(actor, ADMIN_ONLY, "update suppliers")
    s = _get(db, supplier_id)

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No field to update")
    if "email" in changes and not is_valid_email(changes["email"]):
        raise HTTPException(status_code=400, detail="Invalid supplier email")
    if changes.get("name") is None and "name" in changes:
        raise HTTPException(status_code=400, detail="Supplier name is required")

    for field, value in changes.items():
        setattr(s, field, value)
    commit_or_raise(db, f"updating supplier {supplier_id}")
    db.refresh(s)
    return SupplierRead.model_validate(s)


@router.delete("/{supplier_id}", status_code=204)
def delete_supplier(supplier_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ADMIN_ONLY, "delete suppliers")
    s = _get(db, supplier_id)

    orders = db.execute(select(func.count(Order.id)).where(Order.supplier_id == supplier_id)).scalar_one()
    if orders:
        raise HTTPException(status_code=409, detail=f"Supplier has {orders} orders")

    db.delete(s)
    commit_or_raise(db, f"deleting supplier {supplier_id}")
    return Response(status_code=204)
