"""
Stock ledger.

Seul point d'écriture de Product.quantity. Le ledger ne fait jamais de
commit : l'appelant possède la transaction, ce qui permet au workflow des
demandes d'écrire le statut et le stock dans la même unité atomique.
"""

from __future__ import annotations

import logging

from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import Product
from backend.services.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


def is_low_stock(product: Product) -> bool:
    return product.quantity <= product.alert_level


def decrement(db: Session, product_id: int, amount: int) -> int:
    """
    Retire `amount` du stock du produit et retourne la nouvelle quantité.

    Décrément borné : max(0, quantity - amount), calculé en SQL pour qu'un
    second décrément concurrent parte toujours de la valeur écrite par le
    premier (pas de lost update).
    """
    if amount <= 0:
        raise ValidationError("Decrement amount must be positive")

    product = (
        db.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
        )
        .scalar_one_or_none()
    )
    if not product:
        raise NotFound(f"Product {product_id} not found")

    before = product.quantity

    db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(
            quantity=case(
                (Product.quantity > amount, Product.quantity - amount),
                else_=0,
            )
        )
        .execution_options(synchronize_session=False)
    )
    db.refresh(product)

    logger.info("Stock %s (%s): %s -> %s", product.name, product.sku, before, product.quantity)
    if is_low_stock(product):
        logger.warning(
            "Low stock for %s: %s left (alert level %s)",
            product.name,
            product.quantity,
            product.alert_level,
        )
    return product.quantity


def list_low_stock(db: Session) -> list[Product]:
    return list(
        db.execute(
            select(Product)
            .where(Product.quantity <= Product.alert_level)
            .order_by(Product.quantity.asc(), Product.sku)
        )
        .scalars()
        .all()
    )
