from __future__ import annotations

import html

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_db, get_notifier, get_supplier_links, get_token_service
from backend.app.schemas.workflow import OrderCreate, OrderRead, OrderUpdate
from backend.services import order_workflow
from backend.services.access import ANY_ROLE, Actor, require_role
from backend.services.confirmation_tokens import ConfirmationTokenService
from backend.services.errors import DomainError
from backend.services.notifications import Notifier
from backend.services.order_workflow import OrderLine, SupplierLinks

router = APIRouter(prefix="/orders")

_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body style="font-family: Arial, sans-serif; text-align: center; padding: 50px;">
  <h1 style="color: {color};">{title}</h1>
  <p>{message}</p>
</body>
</html>
"""


def _page(title: str, message: str, color: str, status_code: int = 200) -> HTMLResponse:
    body = _PAGE.format(title=html.escape(title), message=html.escape(message), color=color)
    return HTMLResponse(content=body, status_code=status_code)


@router.get("", response_model=list[OrderRead])
def list_orders(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ANY_ROLE, "list orders")
    return [OrderRead.model_validate(o) for o in order_workflow.list_orders(db)]


@router.get("/notifications", response_model=list[OrderRead])
def recent_notifications(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ANY_ROLE, "read order notifications")
    return [OrderRead.model_validate(o) for o in order_workflow.recent_notifications(db)]


@router.get("/{order_id}", response_model=OrderRead)
def get_order(order_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ANY_ROLE, "read orders")
    return OrderRead.model_validate(order_workflow.get_order(db, order_id))


@router.post("", response_model=OrderRead, status_code=201)
def create_order(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    tokens: ConfirmationTokenService = Depends(get_token_service),
    notifier: Notifier = Depends(get_notifier),
    links: SupplierLinks = Depends(get_supplier_links),
):
    order = order_workflow.create_order(
        db,
        actor,
        supplier_id=payload.supplier_id,
        items=[OrderLine(product_id=it.product_id, quantity=it.quantity) for it in payload.items],
        tokens=tokens,
        notifier=notifier,
        links=links,
    )
    return OrderRead.model_validate(order)


@router.put("/{order_id}", response_model=OrderRead)
def update_order(
    order_id: int,
    payload: OrderUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    changes = {k: getattr(payload, k) for k in payload.model_fields_set}
    return OrderRead.model_validate(order_workflow.update_order(db, actor, order_id, **changes))


@router.delete("/{order_id}", status_code=204)
def delete_order(order_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    order_workflow.delete_order(db, actor, order_id)
    return Response(status_code=204)


# Public links from the supplier email: no bearer token, the signed link is the credential.
@router.get("/{order_id}/confirm", response_class=HTMLResponse)
def confirm_order(
    order_id: int,
    token: str = Query(default=""),
    db: Session = Depends(get_db),
    tokens: ConfirmationTokenService = Depends(get_token_service),
):
    try:
        order_workflow.confirm_order(db, order_id, token, tokens)
    except DomainError as exc:
        return _page("Error", exc.message, "#ef4444", exc.status_code)
    return _page("Order confirmed", f"Order #{order_id} has been confirmed. Thank you.", "#22c55e")


@router.get("/{order_id}/reject", response_class=HTMLResponse)
def reject_order(
    order_id: int,
    token: str = Query(default=""),
    db: Session = Depends(get_db),
    tokens: ConfirmationTokenService = Depends(get_token_service),
):
    try:
        order_workflow.reject_order(db, order_id, token, tokens)
    except DomainError as exc:
        return _page("Error", exc.message, "#ef4444", exc.status_code)
    return _page("Order rejected", f"Order #{order_id} has been rejected.", "#ef4444")
