"""
Request workflow (demandes internes de stock).

Cycle de vie :
    PENDING -> APPROVED | REJECTED
    APPROVED -> PREPARED -> PICKEDUP

Un rôle entrepôt (ADMIN / MAGASINIER) peut poser n'importe quel statut cible ;
les règles métier portent sur la cible :
- APPROVED  : refusé si le stock courant ne couvre pas la quantité demandée
- PICKEDUP  : décrémente le stock une seule fois, dans la même transaction
              que le changement de statut
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, selectinload

from backend.app.db.base import utcnow
from backend.app.db.models.core_types import RequestStatus
from backend.app.db.models.models_v1 import Product, Request, User
from backend.services import stock_ledger
from backend.services.access import ADMIN_ONLY, ANY_ROLE, WAREHOUSE_ROLES, Actor, require_role
from backend.services.errors import (
    Conflict,
    DomainError,
    NotFound,
    ValidationError,
    commit_or_raise,
)

logger = logging.getLogger(__name__)

_UNSET = object()

EDITABLE_STATUSES = {RequestStatus.pending}
DELETABLE_STATUSES = {
    RequestStatus.pending,
    RequestStatus.approved,
    RequestStatus.rejected,
}


def coerce_status(value: RequestStatus | str) -> RequestStatus:
    if isinstance(value, RequestStatus):
        return value
    try:
        return RequestStatus(value)
    except ValueError:
        accepted = ", ".join(s.value for s in RequestStatus)
        raise ValidationError(f"Invalid status. Accepted values: {accepted}")


def validate_request_transition(
    actor: Actor | None,
    current: RequestStatus,
    target: RequestStatus | str,
) -> RequestStatus:
    """
    Valide une transition de demande et retourne le statut cible typé.

    Toute cible est acceptée pour un rôle entrepôt, quel que soit le statut
    courant. Un EMPLOYE ne change jamais un statut.
    """
    target = coerce_status(target)
    require_role(actor, WAREHOUSE_ROLES, f"move requests from {current.value} to {target.value}")
    return target


def _clean_reason(reason: str | None) -> str | None:
    if reason is None:
        return None
    return reason.strip() or None


def _load(db: Session, request_id: int, *, lock: bool = False) -> Request:
    stmt = select(Request).where(Request.id == request_id)
    if lock:
        stmt = stmt.with_for_update()
    req = db.execute(stmt).scalar_one_or_none()
    if not req:
        raise NotFound(f"Request {request_id} not found")
    return req


# ---------- READ ----------
def get_request(db: Session, request_id: int) -> Request:
    req = db.execute(
        select(Request)
        .where(Request.id == request_id)
        .options(selectinload(Request.product), selectinload(Request.user))
    ).scalar_one_or_none()
    if not req:
        raise NotFound(f"Request {request_id} not found")
    return req


def list_requests(db: Session) -> list[Request]:
    return list(
        db.execute(
            select(Request)
            .options(selectinload(Request.product), selectinload(Request.user))
            .order_by(Request.created_at.desc(), Request.id.desc())
        )
        .scalars()
        .all()
    )


def request_stats(db: Session) -> dict:
    rows = db.execute(
        select(Request.status, func.count(Request.id)).group_by(Request.status)
    ).all()
    by_status = {status.value: int(count) for status, count in rows}
    return {"total": sum(by_status.values()), "by_status": by_status}


# ---------- WRITE ----------
def create_request(
    db: Session,
    actor: Actor,
    *,
    product_id: int,
    quantity: int,
    reason: str | None = None,
    user_id: int | None = None,
) -> Request:
    require_role(actor, ANY_ROLE, "create requests")

    if quantity is None or int(quantity) <= 0:
        raise ValidationError("Quantity must be a positive number")
    quantity = int(quantity)
    user_id = actor.user_id if user_id is None else user_id

    product = db.get(Product, product_id)
    if not product:
        raise NotFound(f"Product {product_id} not found")
    user = db.get(User, user_id)
    if not user:
        raise NotFound(f"User {user_id} not found")

    # stock insuffisant = simple avertissement à la création
    if product.quantity < quantity:
        logger.warning(
            "Insufficient stock for %s: requested %s, available %s",
            product.name,
            quantity,
            product.quantity,
        )

    req = Request(
        product_id=product_id,
        user_id=user_id,
        quantity=quantity,
        reason=_clean_reason(reason),
        status=RequestStatus.pending,
    )
    db.add(req)
    commit_or_raise(db, "creating request")
    db.refresh(req)

    logger.info("Request %s created: %sx %s by %s", req.id, quantity, product.name, user.name)
    return req


def set_request_status(
    db: Session,
    actor: Actor,
    request_id: int,
    status: RequestStatus | str,
) -> Request:
    # rôle vérifié avant toute lecture : un EMPLOYE ne sonde pas les ids
    require_role(actor, WAREHOUSE_ROLES, "change request status")
    target = coerce_status(status)

    req = _load(db, request_id, lock=True)
    previous = req.status
    validate_request_transition(actor, previous, target)

    if target == RequestStatus.approved:
        product = db.get(Product, req.product_id)
        if not product:
            message = f"Product {req.product_id} not found"
            db.rollback()
            raise NotFound(message)
        if product.quantity < req.quantity:
            message = f"Insufficient stock. Available: {product.quantity}, requested: {req.quantity}"
            db.rollback()  # libère le verrou FOR UPDATE
            raise Conflict(message, code="InsufficientStock")

    if target == RequestStatus.picked_up:
        _pick_up(db, req)
    else:
        req.status = target
        commit_or_raise(db, f"updating request {request_id}")

    db.refresh(req)
    logger.info("Request %s: %s -> %s", request_id, previous.value, req.status.value)
    return req


def _pick_up(db: Session, req: Request) -> None:
    """
    Passage à PICKEDUP : statut + décrément de stock en une seule transaction.

    L'UPDATE conditionnel (status != PICKEDUP) garantit qu'un seul appelant
    décrémente, même si deux retraits arrivent en même temps.
    """
    try:
        result = db.execute(
            update(Request)
            .where(Request.id == req.id)
            .where(Request.status != RequestStatus.picked_up)
            .values(status=RequestStatus.picked_up, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            stock_ledger.decrement(db, req.product_id, req.quantity)
        else:
            logger.info("Request %s already picked up, stock untouched", req.id)
    except DomainError:
        db.rollback()
        raise

    commit_or_raise(db, f"picking up request {req.id}")


def update_request(
    db: Session,
    actor: Actor,
    request_id: int,
    *,
    quantity: int | None = _UNSET,
    reason: str | None = _UNSET,
) -> Request:
    require_role(actor, WAREHOUSE_ROLES, "edit requests")

    values = {}
    if quantity is not _UNSET:
        if quantity is None or int(quantity) <= 0:
            raise ValidationError("Quantity must be a positive number")
        values["quantity"] = int(quantity)
    if reason is not _UNSET:
        values["reason"] = _clean_reason(reason)
    if not values:
        raise ValidationError("No field to update")

    req = _load(db, request_id)
    if req.status not in EDITABLE_STATUSES:
        raise Conflict("Only pending requests can be edited", code="NotEditable")

    # la condition sur le statut protège contre une validation concurrente
    result = db.execute(
        update(Request)
        .where(Request.id == request_id)
        .where(Request.status.in_(EDITABLE_STATUSES))
        .values(**values, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise Conflict("Only pending requests can be edited", code="NotEditable")

    commit_or_raise(db, f"editing request {request_id}")
    db.refresh(req)
    logger.info("Request %s edited", request_id)
    return req


def delete_request(db: Session, actor: Actor, request_id: int) -> None:
    require_role(actor, ADMIN_ONLY, "delete requests")

    req = _load(db, request_id)
    if req.status not in DELETABLE_STATUSES:
        raise Conflict("Cannot delete a request that was already processed", code="AlreadyProcessed")

    result = db.execute(
        delete(Request)
        .where(Request.id == request_id)
        .where(Request.status.in_(DELETABLE_STATUSES))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise Conflict("Cannot delete a request that was already processed", code="AlreadyProcessed")

    db.expunge(req)
    commit_or_raise(db, f"deleting request {request_id}")
    logger.info("Request %s deleted", request_id)
