import pytest

from backend.app.db.models.core_types import OrderStatus, RequestStatus, Role
from backend.app.db.models.models_v1 import Category, Order, Product, Request, Supplier, User
from backend.services import order_workflow, request_workflow
from backend.services.access import Actor
from backend.services.errors import Conflict
from backend.services.order_workflow import OrderLine


@pytest.fixture
def shared_db(session_factory):
    """Données de base commitées dans la base fichier, visibles de toutes les sessions."""
    db = session_factory()
    category = Category(name="Fournitures")
    supplier = Supplier(name="Acme", email="orders@acme.test")
    user = User(name="Mag", email="mag@test.local", role=Role.storekeeper)
    db.add_all([category, supplier, user])
    db.flush()
    product = Product(sku="SKU-1", name="Gants", quantity=5, alert_level=2, category_id=category.id)
    db.add(product)
    db.commit()
    return {
        "db": db,
        "actor": Actor(user_id=user.id, role=Role.storekeeper),
        "supplier": supplier,
        "product": product,
    }


@pytest.fixture
def pending_order(shared_db, tokens, notifier, links):
    return order_workflow.create_order(
        shared_db["db"],
        shared_db["actor"],
        supplier_id=shared_db["supplier"].id,
        items=[OrderLine(product_id=shared_db["product"].id, quantity=3)],
        tokens=tokens,
        notifier=notifier,
        links=links,
    )


def test_stale_session_loses_confirmation_race(session_factory, shared_db, pending_order, tokens):
    """
    GIVEN
    - une commande PENDING chargée dans deux sessions
    - la session 1 confirme via le lien

    THEN
    - la session 2, qui voit encore token_used=False, perd sur l'UPDATE
      conditionnel (AlreadyUsed) et la commande reste APPROVED
    """
    # ---------- ARRANGE ----------
    first, second = shared_db["db"], session_factory()
    stale = second.get(Order, pending_order.id)
    assert stale.token_used is False
    token = tokens.mint(pending_order.id)

    # ---------- ACT ----------
    order_workflow.confirm_order(first, pending_order.id, token, tokens)
    with pytest.raises(Conflict) as exc:
        order_workflow.reject_order(second, pending_order.id, token, tokens)

    # ---------- ASSERT ----------
    assert exc.value.code == "AlreadyUsed"
    check = session_factory().get(Order, pending_order.id)
    assert (check.status, check.token_used) == (OrderStatus.approved, True)


def test_reject_then_confirm_keeps_rejected(session_factory, shared_db, pending_order, tokens):
    first, second = shared_db["db"], session_factory()
    second.get(Order, pending_order.id)
    token = tokens.mint(pending_order.id)

    order_workflow.reject_order(first, pending_order.id, token, tokens)
    with pytest.raises(Conflict) as exc:
        order_workflow.confirm_order(second, pending_order.id, token, tokens)

    assert exc.value.code == "AlreadyUsed"
    assert session_factory().get(Order, pending_order.id).status == OrderStatus.rejected


def test_concurrent_pickups_decrement_once(session_factory, shared_db):
    """
    GIVEN
    - un produit à 5 unités et une demande APPROVED de 2 unités
    - la demande chargée dans deux sessions avant tout retrait

    THEN
    - les deux passages à PICKEDUP réussissent, le stock ne baisse qu'une fois (5 -> 3)
    """
    # ---------- ARRANGE ----------
    first, second = shared_db["db"], session_factory()
    actor = shared_db["actor"]
    req = request_workflow.create_request(first, actor, product_id=shared_db["product"].id, quantity=2)
    request_workflow.set_request_status(first, actor, req.id, "APPROVED")
    stale = second.get(Request, req.id)
    assert stale.status == RequestStatus.approved

    # ---------- ACT ----------
    request_workflow.set_request_status(first, actor, req.id, "PICKEDUP")
    done = request_workflow.set_request_status(second, actor, req.id, "PICKEDUP")

    # ---------- ASSERT ----------
    assert done.status == RequestStatus.picked_up
    assert session_factory().get(Product, shared_db["product"].id).quantity == 3
