from __future__ import annotations

import logging

from sqlalchemy import select

from backend.app.core.config import setup_logging
from backend.app.db.models.core_types import Role
from backend.app.db.models.models_v1 import Category, User
from backend.app.db.session import SessionLocal

logger = logging.getLogger(__name__)

USERS = (
    ("Administrateur", "admin@invema.local", Role.admin),
    ("Magasinier", "magasinier@invema.local", Role.storekeeper),
    ("Employé", "employe@invema.local", Role.employee),
)
ROOT_CATEGORY = "Général"


def run_seed(db=None):
    own_session = db is None
    db = db or SessionLocal()
    try:
        # 1) un utilisateur par rôle
        for name, email, role in USERS:
            if not db.scalar(select(User).where(User.email == email)):
                db.add(User(name=name, email=email, role=role, active=True))
                logger.info("Seed user %s (%s)", email, role.value)

        # 2) une catégorie racine pour pouvoir créer des produits
        root = db.scalar(
            select(Category).where(Category.name == ROOT_CATEGORY, Category.parent_id.is_(None))
        )
        if not root:
            db.add(Category(name=ROOT_CATEGORY))
            logger.info("Seed root category %s", ROOT_CATEGORY)

        db.commit()
        logger.info("SEED OK: %s users, root category %s", len(USERS), ROOT_CATEGORY)
    finally:
        if own_session:
            db.close()


if __name__ == "__main__":
    setup_logging()
    run_seed()
