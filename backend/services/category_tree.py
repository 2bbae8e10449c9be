"""
Category tree.

Les catégories forment une forêt : chaque ligne pointe vers son parent
(parent_id nullable). Toute création / modification d'un lien parent passe
par would_create_cycle() juste avant l'écriture.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from backend.app.db.models.models_v1 import Category, Product
from backend.services.access import ADMIN_ONLY, WAREHOUSE_ROLES, Actor, require_role
from backend.services.errors import Conflict, NotFound, ValidationError, commit_or_raise

logger = logging.getLogger(__name__)

_UNSET = object()


def would_create_cycle(db: Session, category_id: int, proposed_parent_id: int | None) -> bool:
    """
    True si rattacher `category_id` sous `proposed_parent_id` crée un cycle,
    c'est-à-dire si le parent proposé est la catégorie elle-même ou l'un de
    ses descendants.

    Remonte la chaîne des ancêtres depuis le parent proposé. La marche est
    bornée par le nombre total de catégories, même si la base contient déjà
    une boucle.
    """
    if proposed_parent_id is None:
        return False
    if category_id == proposed_parent_id:
        return True

    max_steps = db.execute(select(func.count(Category.id))).scalar_one()
    visited = {category_id}
    current = proposed_parent_id

    for _ in range(max_steps + 1):
        if current is None:
            return False
        if current in visited:
            return True
        visited.add(current)

        current = db.execute(
            select(Category.parent_id).where(Category.id == current)
        ).scalar_one_or_none()

    # plus de pas que de noeuds : la chaîne boucle forcément
    return True


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Category name is required")
    return cleaned


def _ensure_parent(db: Session, parent_id: int | None) -> None:
    if parent_id is not None and not db.get(Category, parent_id):
        raise NotFound(f"Parent category {parent_id} not found")


def _ensure_unique_among_siblings(
    db: Session,
    name: str,
    parent_id: int | None,
    exclude_id: int | None = None,
) -> None:
    stmt = select(Category.id).where(Category.name == name)
    if parent_id is None:
        stmt = stmt.where(Category.parent_id.is_(None))
    else:
        stmt = stmt.where(Category.parent_id == parent_id)
    if exclude_id is not None:
        stmt = stmt.where(Category.id != exclude_id)

    if db.execute(stmt).first():
        raise Conflict("A category with this name already exists at this level", code="DuplicateName")


def count_dependents(db: Session, category_id: int) -> tuple[int, int]:
    children = db.execute(
        select(func.count(Category.id)).where(Category.parent_id == category_id)
    ).scalar_one()
    products = db.execute(
        select(func.count(Product.id)).where(Product.category_id == category_id)
    ).scalar_one()
    return int(children), int(products)


def get_category(db: Session, category_id: int) -> Category:
    category = db.execute(
        select(Category)
        .where(Category.id == category_id)
        .options(
            selectinload(Category.parent),
            selectinload(Category.children),
            selectinload(Category.products),
        )
    ).scalar_one_or_none()
    if not category:
        raise NotFound(f"Category {category_id} not found")
    return category


def list_root_categories(db: Session) -> list[Category]:
    return list(
        db.execute(
            select(Category)
            .where(Category.parent_id.is_(None))
            .options(
                selectinload(Category.children).selectinload(Category.children),
                selectinload(Category.children).selectinload(Category.products),
                selectinload(Category.products),
            )
            .order_by(Category.name.asc())
        )
        .scalars()
        .all()
    )


def create_category(db: Session, actor: Actor, *, name: str, parent_id: int | None = None) -> Category:
    require_role(actor, WAREHOUSE_ROLES, "create categories")
    name = _clean_name(name)

    _ensure_parent(db, parent_id)
    _ensure_unique_among_siblings(db, name, parent_id)

    category = Category(name=name, parent_id=parent_id)
    db.add(category)
    commit_or_raise(db, "creating category")
    db.refresh(category)

    logger.info("Category created: %s (parent=%s)", category.name, parent_id)
    return category


def update_category(
    db: Session,
    actor: Actor,
    category_id: int,
    *,
    name: str | None = _UNSET,
    parent_id: int | None = _UNSET,
) -> Category:
    """
    Renomme et/ou déplace une catégorie. Passer parent_id=None la remonte à
    la racine ; ne pas passer parent_id laisse le parent inchangé.
    """
    require_role(actor, WAREHOUSE_ROLES, "update categories")

    category = db.get(Category, category_id)
    if not category:
        raise NotFound(f"Category {category_id} not found")

    new_name = category.name if name is _UNSET else _clean_name(name)
    new_parent_id = category.parent_id if parent_id is _UNSET else parent_id

    if parent_id is not _UNSET and new_parent_id is not None:
        if new_parent_id == category_id:
            raise Conflict("A category cannot be its own parent", code="CycleDetected")
        _ensure_parent(db, new_parent_id)

    if name is not _UNSET or parent_id is not _UNSET:
        _ensure_unique_among_siblings(db, new_name, new_parent_id, exclude_id=category_id)

    # re-validation immédiatement avant l'écriture
    if parent_id is not _UNSET and would_create_cycle(db, category_id, new_parent_id):
        raise Conflict("This change would create a circular hierarchy", code="CycleDetected")

    category.name = new_name
    category.parent_id = new_parent_id
    commit_or_raise(db, "updating category")
    db.refresh(category)

    logger.info("Category %s updated: %s (parent=%s)", category.id, category.name, category.parent_id)
    return category


def delete_category(db: Session, actor: Actor, category_id: int) -> None:
    require_role(actor, ADMIN_ONLY, "delete categories")

    category = db.get(Category, category_id)
    if not category:
        raise NotFound(f"Category {category_id} not found")

    children, products = count_dependents(db, category_id)
    if children:
        raise Conflict(
            f"Cannot delete: category has {children} sub-categories",
            code="HasDependents",
        )
    if products:
        raise Conflict(
            f"Cannot delete: category has {products} products",
            code="HasDependents",
        )

    name = category.name
    db.delete(category)
    commit_or_raise(db, "deleting category")
    logger.info("Category deleted: %s", name)
