from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from backend.app.db.base import utcnow
from backend.app.db.models.core_types import OrderStatus
from backend.app.db.models.models_v1 import Order, OrderItem, Supplier
from backend.services import order_workflow
from backend.services.confirmation_tokens import TokenExpired, TokenInvalid, TokenMismatch
from backend.services.errors import Conflict, Forbidden, NotFound, ValidationError
from backend.services.order_workflow import OrderLine


@pytest.fixture
def place_order(db_session, storekeeper, supplier, make_product, tokens, notifier, links):
    def _place(lines=None, notifier_=None):
        if lines is None:
            lines = [OrderLine(product_id=make_product().id, quantity=4)]
        return order_workflow.create_order(
            db_session,
            storekeeper,
            supplier_id=supplier.id,
            items=lines,
            tokens=tokens,
            notifier=notifier_ or notifier,
            links=links,
        )

    return _place


def test_create_order_notifies_supplier(place_order, notifier, supplier):
    order = place_order()

    assert order.status == OrderStatus.pending
    assert order.token_used is False
    assert len(order.items) == 1

    assert len(notifier.sent) == 1
    mail = notifier.sent[0]
    assert mail["to"] == supplier.email
    assert f"/v1/orders/{order.id}/confirm?token=" in mail["text"]
    assert f"/v1/orders/{order.id}/reject?token=" in mail["text"]
    assert "24 hours" in mail["html"]


@pytest.mark.parametrize("failure", [{"result": False}, {"error": RuntimeError("smtp down")}])
def test_notification_failure_keeps_order(db_session, place_order, make_notifier, failure):
    failing = make_notifier(**failure)
    order = place_order(notifier_=failing)

    assert db_session.get(Order, order.id) is not None


def test_create_order_validations(db_session, storekeeper, employee, supplier, make_product, tokens, notifier, links):
    p = make_product()

    def create(actor=storekeeper, supplier_id=supplier.id, items=()):
        return order_workflow.create_order(
            db_session, actor, supplier_id=supplier_id, items=items, tokens=tokens, notifier=notifier, links=links
        )

    with pytest.raises(ValidationError):
        create(items=[])
    with pytest.raises(ValidationError):
        create(items=[OrderLine(product_id=p.id, quantity=0)])
    with pytest.raises(NotFound):
        create(supplier_id=4040, items=[OrderLine(product_id=p.id, quantity=1)])
    with pytest.raises(NotFound):
        create(items=[OrderLine(product_id=p.id, quantity=1), OrderLine(product_id=777, quantity=1)])
    with pytest.raises(Forbidden):
        create(actor=employee, items=[OrderLine(product_id=p.id, quantity=1)])

    assert db_session.execute(select(Order)).scalars().all() == []
    assert notifier.sent == []


def test_confirm_is_single_use(db_session, place_order, tokens):
    order = place_order()
    token = tokens.mint(order.id)

    confirmed = order_workflow.confirm_order(db_session, order.id, token, tokens)
    assert confirmed.status == OrderStatus.approved
    assert confirmed.token_used is True

    with pytest.raises(Conflict) as exc:
        order_workflow.confirm_order(db_session, order.id, token, tokens)
    assert exc.value.code == "AlreadyUsed"

    with pytest.raises(Conflict) as exc:
        order_workflow.reject_order(db_session, order.id, token, tokens)
    assert exc.value.code == "AlreadyUsed"

    db_session.refresh(order)
    assert order.status == OrderStatus.approved


def test_reject_via_link(db_session, place_order, tokens):
    order = place_order()

    rejected = order_workflow.reject_order(db_session, order.id, tokens.mint(order.id), tokens)

    assert rejected.status == OrderStatus.rejected
    assert rejected.token_used is True


def test_token_bound_to_other_order_is_refused(db_session, place_order, tokens):
    """
    GIVEN
    - deux commandes O1 et O2
    - un jeton émis pour O1

    THEN
    - confirmer O2 avec ce jeton échoue (TokenMismatch), O2 reste PENDING
    """
    o1 = place_order()
    o2 = place_order()

    with pytest.raises(TokenMismatch) as exc:
        order_workflow.confirm_order(db_session, o2.id, tokens.mint(o1.id), tokens)
    assert exc.value.code == "TokenMismatch"

    db_session.refresh(o2)
    assert o2.status == OrderStatus.pending
    assert o2.token_used is False


def test_expired_and_invalid_tokens(db_session, place_order, tokens):
    order = place_order()
    old = tokens.mint(order.id, now=datetime.now(timezone.utc) - timedelta(hours=25))

    with pytest.raises(TokenExpired):
        order_workflow.confirm_order(db_session, order.id, old, tokens)
    with pytest.raises(TokenInvalid):
        order_workflow.reject_order(db_session, order.id, "not-a-token", tokens)

    db_session.refresh(order)
    assert order.token_used is False


def test_update_order(db_session, place_order, admin, employee):
    order = place_order()
    other = Supplier(name="Other", email="other@supplier.test")
    db_session.add(other)
    db_session.commit()

    updated = order_workflow.update_order(db_session, admin, order.id, status="PREPARED", supplier_id=other.id)
    assert updated.status == OrderStatus.prepared
    assert updated.supplier_id == other.id

    with pytest.raises(ValidationError):
        order_workflow.update_order(db_session, admin, order.id)
    with pytest.raises(ValidationError):
        order_workflow.update_order(db_session, admin, order.id, status="SHIPPED")
    with pytest.raises(NotFound):
        order_workflow.update_order(db_session, admin, order.id, supplier_id=9999)
    with pytest.raises(Forbidden):
        order_workflow.update_order(db_session, employee, order.id, status="APPROVED")


def test_delete_order(db_session, place_order, storekeeper, admin):
    pending = place_order()
    processed = place_order()
    order_workflow.update_order(db_session, admin, processed.id, status="PICKEDUP")

    order_workflow.delete_order(db_session, storekeeper, pending.id)
    assert db_session.get(Order, pending.id) is None
    assert db_session.execute(select(OrderItem).where(OrderItem.order_id == pending.id)).first() is None

    with pytest.raises(Conflict) as exc:
        order_workflow.delete_order(db_session, storekeeper, processed.id)
    assert exc.value.code == "AlreadyProcessed"


def test_recent_notifications(db_session, place_order, tokens):
    answered = place_order()
    silent = place_order()
    old = place_order()
    order_workflow.confirm_order(db_session, answered.id, tokens.mint(answered.id), tokens)
    order_workflow.reject_order(db_session, old.id, tokens.mint(old.id), tokens)
    old.created_at = datetime.now(timezone.utc) - timedelta(days=2)
    db_session.commit()

    feed = order_workflow.recent_notifications(db_session)

    assert [o.id for o in feed] == [answered.id]
    assert silent.id not in [o.id for o in feed]


def test_notification_window_uses_utc_clock(db_session, place_order, tokens):
    order = place_order()
    order_workflow.confirm_order(db_session, order.id, tokens.mint(order.id), tokens)

    now = utcnow()
    assert now.tzinfo is timezone.utc

    assert [o.id for o in order_workflow.recent_notifications(db_session, now=now + timedelta(hours=23))] == [order.id]
    assert order_workflow.recent_notifications(db_session, now=now + timedelta(hours=25)) == []
