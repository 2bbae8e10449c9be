"""
Order workflow (commandes fournisseur).

Création -> jeton de confirmation -> email au fournisseur -> le fournisseur
confirme (APPROVED) ou rejette (REJECTED) via le lien. Le lien ne sert
qu'une fois : order.token_used passe à True au premier usage réussi.

Ce module ne fait aucun calcul de stock : une commande fournisseur ne touche
pas Product.quantity.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, selectinload

from backend.app.db.base import utcnow
from backend.app.db.models.core_types import OrderStatus
from backend.app.db.models.models_v1 import Order, OrderItem, Product, Supplier
from backend.services.access import WAREHOUSE_ROLES, Actor, require_role
from backend.services.confirmation_tokens import ConfirmationTokenService
from backend.services.errors import Conflict, NotFound, ValidationError, commit_or_raise
from backend.services.notifications import Notifier

logger = logging.getLogger(__name__)

_UNSET = object()

PROCESSED_STATUSES = {OrderStatus.prepared, OrderStatus.picked_up}
NOTIFICATION_WINDOW = timedelta(hours=24)
NOTIFICATION_LIMIT = 10


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class SupplierLinks:
    base_url: str
    app_name: str = "INVEMA WMS"

    def confirm_url(self, order_id: int, token: str) -> str:
        return f"{self.base_url.rstrip('/')}/v1/orders/{order_id}/confirm?token={token}"

    def reject_url(self, order_id: int, token: str) -> str:
        return f"{self.base_url.rstrip('/')}/v1/orders/{order_id}/reject?token={token}"


def coerce_status(value: OrderStatus | str) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        accepted = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Invalid status. Accepted values: {accepted}")


def validate_order_transition(
    actor: Actor | None,
    current: OrderStatus,
    target: OrderStatus | str,
) -> OrderStatus:
    """Administrative transition: any target, warehouse roles only."""
    target = coerce_status(target)
    require_role(actor, WAREHOUSE_ROLES, f"move orders from {current.value} to {target.value}")
    return target


def validate_order_lines(items: Iterable[OrderLine] | None) -> list[OrderLine]:
    lines = list(items or [])
    if not lines:
        raise ValidationError("An order must contain at least one item")
    for ln in lines:
        if ln.product_id is None:
            raise ValidationError("Each item must reference a product")
        if ln.quantity is None or int(ln.quantity) <= 0:
            raise ValidationError("Item quantity must be greater than 0")
    return lines


def _load(db: Session, order_id: int) -> Order:
    order = db.execute(
        select(Order)
        .where(Order.id == order_id)
        .options(
            selectinload(Order.items).selectinload(OrderItem.product),
            selectinload(Order.supplier),
        )
    ).scalar_one_or_none()
    if not order:
        raise NotFound(f"Order {order_id} not found")
    return order


# ---------- READ ----------
def get_order(db: Session, order_id: int) -> Order:
    return _load(db, order_id)


def list_orders(db: Session) -> list[Order]:
    return list(
        db.execute(
            select(Order)
            .options(
                selectinload(Order.items).selectinload(OrderItem.product),
                selectinload(Order.supplier),
            )
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        .scalars()
        .all()
    )


def recent_notifications(db: Session, now: datetime | None = None) -> list[Order]:
    """Orders created in the last 24h that the supplier already answered."""
    since = (now or utcnow()) - NOTIFICATION_WINDOW
    return list(
        db.execute(
            select(Order)
            .where(Order.token_used.is_(True))
            .where(Order.created_at >= since)
            .options(
                selectinload(Order.items).selectinload(OrderItem.product),
                selectinload(Order.supplier),
            )
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(NOTIFICATION_LIMIT)
        )
        .scalars()
        .all()
    )


# ---------- EMAIL ----------
def build_order_email(order: Order, supplier: Supplier, token: str, links: SupplierLinks) -> tuple[str, str, str]:
    """Return (subject, html_body, text_body) for a new-order email."""
    confirm_url = links.confirm_url(order.id, token)
    reject_url = links.reject_url(order.id, token)
    subject = f"New order #{order.id}"

    items_html = "".join(
        f"<li>{html.escape(it.product.name)} - Quantity: {it.quantity}</li>" for it in order.items
    )
    items_text = "\n".join(f"- {it.product.name} - Quantity: {it.quantity}" for it in order.items)

    html_body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>New order #{order.id}</h2>
  <p>Hello {html.escape(supplier.name)},</p>
  <p>You received a new order with {len(order.items)} item(s).</p>
  <h3>Order details:</h3>
  <ul>{items_html}</ul>
  <div style="margin: 30px 0;">
    <a href="{html.escape(confirm_url)}"
       style="display:inline-block;padding:12px 24px;margin:10px 5px;background-color:#22c55e;color:white;text-decoration:none;border-radius:6px;font-weight:bold;">Confirm order</a>
    <a href="{html.escape(reject_url)}"
       style="display:inline-block;padding:12px 24px;margin:10px 5px;background-color:#ef4444;color:white;text-decoration:none;border-radius:6px;font-weight:bold;">Reject order</a>
  </div>
  <p style="color: #666; font-size: 12px;">This link is valid for 24 hours.</p>
  <p style="color: #666; font-size: 12px;">{html.escape(links.app_name)}</p>
</div>
"""

    text_body = f"""New order #{order.id}

Hello {supplier.name},

You received a new order with {len(order.items)} item(s).

{items_text}

To confirm: {confirm_url}
To reject: {reject_url}

This link is valid for 24 hours.
"""
    return subject, html_body, text_body


def notify_supplier(
    order: Order,
    supplier: Supplier,
    token: str,
    notifier: Notifier,
    links: SupplierLinks,
) -> bool:
    """
    Envoi best-effort : une erreur d'envoi est loguée, jamais propagée.
    La commande reste créée quoi qu'il arrive.
    """
    if not supplier.email:
        logger.warning("Supplier %s has no email, order #%s not notified", supplier.id, order.id)
        return False

    try:
        subject, html_body, text_body = build_order_email(order, supplier, token, links)
        sent = notifier.send(supplier.email, subject, html_body, text_body)
    except Exception:
        logger.exception("Could not notify %s about order #%s", supplier.email, order.id)
        return False

    if sent:
        logger.info("Order #%s sent to %s", order.id, supplier.email)
    else:
        logger.warning("Order #%s email to %s failed", order.id, supplier.email)
    return sent


# ---------- WRITE ----------
def create_order(
    db: Session,
    actor: Actor,
    *,
    supplier_id: int,
    items: Iterable[OrderLine],
    tokens: ConfirmationTokenService,
    notifier: Notifier,
    links: SupplierLinks,
) -> Order:
    require_role(actor, WAREHOUSE_ROLES, "create orders")
    lines = validate_order_lines(items)

    supplier = db.get(Supplier, supplier_id)
    if not supplier:
        raise NotFound(f"Supplier {supplier_id} not found")

    product_ids = {int(ln.product_id) for ln in lines}
    found = set(db.execute(select(Product.id).where(Product.id.in_(product_ids))).scalars().all())
    missing = sorted(product_ids - found)
    if missing:
        raise NotFound(f"Unknown product(s): {', '.join(str(pid) for pid in missing)}")

    order = Order(supplier_id=supplier_id, status=OrderStatus.pending, token_used=False)
    order.items = [OrderItem(product_id=int(ln.product_id), quantity=int(ln.quantity)) for ln in lines]
    db.add(order)
    commit_or_raise(db, "creating order")

    order = _load(db, order.id)
    logger.info("Order #%s created for supplier %s", order.id, supplier.name)

    token = tokens.mint(order.id)
    notify_supplier(order, supplier, token, notifier, links)
    return order


def _answer_order(
    db: Session,
    order_id: int,
    token: str,
    tokens: ConfirmationTokenService,
    target: OrderStatus,
) -> Order:
    tokens.verify_for(token, order_id)

    order = db.get(Order, order_id)
    if not order:
        raise NotFound(f"Order {order_id} not found")
    if order.token_used:
        raise Conflict("This link has already been used", code="AlreadyUsed")

    # check-and-set : un seul des appels confirm/reject concurrents gagne
    result = db.execute(
        update(Order)
        .where(Order.id == order_id)
        .where(Order.token_used.is_(False))
        .values(status=target, token_used=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise Conflict("This link has already been used", code="AlreadyUsed")

    commit_or_raise(db, f"answering order {order_id}")
    db.refresh(order)
    logger.info("Order #%s %s via email link", order_id, target.value)
    return order


def confirm_order(db: Session, order_id: int, token: str, tokens: ConfirmationTokenService) -> Order:
    return _answer_order(db, order_id, token, tokens, OrderStatus.approved)


def reject_order(db: Session, order_id: int, token: str, tokens: ConfirmationTokenService) -> Order:
    return _answer_order(db, order_id, token, tokens, OrderStatus.rejected)


def update_order(
    db: Session,
    actor: Actor,
    order_id: int,
    *,
    status: OrderStatus | str | None = _UNSET,
    supplier_id: int | None = _UNSET,
) -> Order:
    require_role(actor, WAREHOUSE_ROLES, "update orders")
    if status is _UNSET and supplier_id is _UNSET:
        raise ValidationError("No field to update")

    order = db.get(Order, order_id)
    if not order:
        raise NotFound(f"Order {order_id} not found")

    previous = order.status
    if status is not _UNSET:
        order_status = validate_order_transition(actor, previous, status)
    if supplier_id is not _UNSET:
        if supplier_id is None or not db.get(Supplier, supplier_id):
            raise NotFound(f"Supplier {supplier_id} not found")

    if status is not _UNSET:
        order.status = order_status
    if supplier_id is not _UNSET:
        order.supplier_id = supplier_id
    commit_or_raise(db, f"updating order {order_id}")

    logger.info("Order #%s updated, status %s -> %s", order_id, previous.value, order.status.value)
    return _load(db, order_id)


def delete_order(db: Session, actor: Actor, order_id: int) -> None:
    require_role(actor, WAREHOUSE_ROLES, "delete orders")

    order = db.get(Order, order_id)
    if not order:
        raise NotFound(f"Order {order_id} not found")
    if order.status in PROCESSED_STATUSES:
        raise Conflict("Cannot delete an order that was already processed", code="AlreadyProcessed")

    # items d'abord, puis la commande
    db.execute(
        delete(OrderItem)
        .where(OrderItem.order_id == order_id)
        .execution_options(synchronize_session=False)
    )
    db.expire(order, ["items"])
    db.delete(order)
    commit_or_raise(db, f"deleting order {order_id}")
    logger.info("Order #%s deleted", order_id)
