import logging

import pytest

from backend.app.db.models.core_types import RequestStatus
from backend.app.db.models.models_v1 import Product, Request
from backend.services import request_workflow
from backend.services.errors import Conflict, Forbidden, NotFound, ValidationError


def test_full_lifecycle_decrements_stock_once(db_session, employee, storekeeper, make_product):
    """
    GIVEN
    - un produit P avec quantity=5, alert_level=2
    - une demande de 3 unités créée par un EMPLOYE

    THEN
    - APPROVED -> PREPARED -> PICKEDUP laisse P.quantity == 2
    - une seconde demande de 10 unités ne peut pas être approuvée
    """
    p = make_product(quantity=5, alert_level=2)

    # ---------- ACT ----------
    req = request_workflow.create_request(db_session, employee, product_id=p.id, quantity=3)
    assert req.status == RequestStatus.pending
    assert req.user_id == employee.user_id

    request_workflow.set_request_status(db_session, storekeeper, req.id, "APPROVED")
    request_workflow.set_request_status(db_session, storekeeper, req.id, RequestStatus.prepared)
    done = request_workflow.set_request_status(db_session, storekeeper, req.id, "PICKEDUP")

    # ---------- ASSERT ----------
    assert done.status == RequestStatus.picked_up
    db_session.refresh(p)
    assert p.quantity == 2

    big = request_workflow.create_request(db_session, employee, product_id=p.id, quantity=10)
    with pytest.raises(Conflict) as exc:
        request_workflow.set_request_status(db_session, storekeeper, big.id, "APPROVED")
    assert exc.value.code == "InsufficientStock"

    db_session.refresh(big)
    assert big.status == RequestStatus.pending


def test_repeated_pickup_is_noop_on_stock(db_session, employee, admin, make_product):
    p = make_product(quantity=5)
    req = request_workflow.create_request(db_session, employee, product_id=p.id, quantity=2)

    request_workflow.set_request_status(db_session, admin, req.id, "PICKEDUP")
    request_workflow.set_request_status(db_session, admin, req.id, "PICKEDUP")

    db_session.refresh(p)
    assert p.quantity == 3


def test_pickup_clamps_at_zero(db_session, employee, admin, make_product):
    p = make_product(quantity=1)
    req = request_workflow.create_request(db_session, employee, product_id=p.id, quantity=4)

    request_workflow.set_request_status(db_session, admin, req.id, "PICKEDUP")

    db_session.refresh(p)
    assert p.quantity == 0


def test_employee_cannot_change_status(db_session, employee, make_product):
    p = make_product()
    req = request_workflow.create_request(db_session, employee, product_id=p.id, quantity=1)

    with pytest.raises(Forbidden) as exc:
        request_workflow.set_request_status(db_session, employee, req.id, "APPROVED")
    assert exc.value.code == "InsufficientRole"


def test_unknown_status_is_rejected(db_session, employee, admin, make_product):
    p = make_product()
    req = request_workflow.create_request(db_session, employee, product_id=p.id, quantity=1)

    with pytest.raises(ValidationError):
        request_workflow.set_request_status(db_session, admin, req.id, "REJECTER")


def test_create_validations(db_session, employee, make_product, caplog):
    p = make_product(quantity=1)

    with pytest.raises(ValidationError):
        request_workflow.create_request(db_session, employee, product_id=p.id, quantity=0)
    with pytest.raises(NotFound):
        request_workflow.create_request(db_session, employee, product_id=31337, quantity=1)
    with pytest.raises(NotFound):
        request_workflow.create_request(db_session, employee, product_id=p.id, quantity=1, user_id=31337)

    # stock insuffisant : avertissement seulement
    with caplog.at_level(logging.WARNING, logger="backend.services.request_workflow"):
        req = request_workflow.create_request(db_session, employee, product_id=p.id, quantity=9, reason="  ")
    assert req.reason is None
    assert any("Insufficient stock" in r.message for r in caplog.records)


def test_edit_only_while_pending(db_session, employee, storekeeper, make_product):
    p = make_product(quantity=10)
    req = request_workflow.create_request(db_session, employee, product_id=p.id, quantity=1)

    edited = request_workflow.update_request(db_session, storekeeper, req.id, quantity=4, reason="atelier")
    assert (edited.quantity, edited.reason) == (4, "atelier")

    with pytest.raises(ValidationError):
        request_workflow.update_request(db_session, storekeeper, req.id)

    request_workflow.set_request_status(db_session, storekeeper, req.id, "APPROVED")
    with pytest.raises(Conflict) as exc:
        request_workflow.update_request(db_session, storekeeper, req.id, quantity=2)
    assert exc.value.code == "NotEditable"


def test_delete_rules(db_session, employee, storekeeper, admin, make_product):
    p = make_product(quantity=10)
    approved = request_workflow.create_request(db_session, employee, product_id=p.id, quantity=1)
    request_workflow.set_request_status(db_session, admin, approved.id, "APPROVED")
    prepared = request_workflow.create_request(db_session, employee, product_id=p.id, quantity=1)
    request_workflow.set_request_status(db_session, admin, prepared.id, "PREPARED")

    with pytest.raises(Forbidden):
        request_workflow.delete_request(db_session, storekeeper, approved.id)

    request_workflow.delete_request(db_session, admin, approved.id)
    assert db_session.get(Request, approved.id) is None

    with pytest.raises(Conflict) as exc:
        request_workflow.delete_request(db_session, admin, prepared.id)
    assert exc.value.code == "AlreadyProcessed"


def test_list_and_stats(db_session, employee, admin, make_product):
    p = make_product(quantity=10)
    first = request_workflow.create_request(db_session, employee, product_id=p.id, quantity=1)
    second = request_workflow.create_request(db_session, employee, product_id=p.id, quantity=2)
    request_workflow.set_request_status(db_session, admin, second.id, "REJECTED")

    listed = request_workflow.list_requests(db_session)
    assert {r.id for r in listed} == {first.id, second.id}

    stats = request_workflow.request_stats(db_session)
    assert stats["total"] == 2
    assert stats["by_status"] == {"PENDING": 1, "REJECTED": 1}
    assert db_session.get(Product, p.id).quantity == 10


def test_role_is_checked_before_lookup(db_session, employee):
    with pytest.raises(Forbidden):
        request_workflow.set_request_status(db_session, employee, 987654, "APPROVED")


def test_insufficient_stock_releases_transaction(db_session, employee, storekeeper, make_product):
    p = make_product(quantity=1)
    req = request_workflow.create_request(db_session, employee, product_id=p.id, quantity=3)

    with pytest.raises(Conflict) as exc:
        request_workflow.set_request_status(db_session, storekeeper, req.id, "APPROVED")

    # ---------- ASSERT ----------
    assert "Available: 1, requested: 3" in exc.value.message
    assert not db_session.in_transaction()
