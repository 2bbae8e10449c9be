from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_db
from backend.app.schemas.catalog import CategoryCreate, CategoryRead, CategoryTree, CategoryUpdate
from backend.services import category_tree
from backend.services.access import ANY_ROLE, Actor, require_role

router = APIRouter(prefix="/categories")


def _read(category) -> CategoryRead:
    data = CategoryRead.model_validate(category)
    data.children_count = len(category.children)
    data.products_count = len(category.products)
    return data


@router.get("", response_model=list[CategoryTree])
def list_categories(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ANY_ROLE, "list categories")
    return [CategoryTree.model_validate(c) for c in category_tree.list_root_categories(db)]


@router.get("/{category_id}", response_model=CategoryRead)
def get_category(category_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ANY_ROLE, "read categories")
    return _read(category_tree.get_category(db, category_id))


@router.post("", response_model=CategoryRead, status_code=201)
def create_category(payload: CategoryCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    category = category_tree.create_category(db, actor, name=payload.name, parent_id=payload.parent_id)
    return _read(category_tree.get_category(db, category.id))


@router.put("/{category_id}", response_model=CategoryRead)
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    changes = {}
    if "name" in payload.model_fields_set:
        changes["name"] = payload.name
    if "parent_id" in payload.model_fields_set:
        changes["parent_id"] = payload.parent_id

    category_tree.update_category(db, actor, category_id, **changes)
    return _read(category_tree.get_category(db, category_id))


@router.delete("/{category_id}", status_code=204)
def delete_category(category_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    category_tree.delete_category(db, actor, category_id)
    return Response(status_code=204)
