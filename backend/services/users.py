"""
Users (comptes applicatifs).

Seules les fiches sont gérées ici : nom, email, rôle, actif. Les mots de
passe et l'émission des jetons appartiennent au service d'identité.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from backend.app.db.models.core_types import Role
from backend.app.db.models.models_v1 import Request, User
from backend.services.access import ADMIN_ONLY, ANY_ROLE, Actor, require_owner_or_role, require_role
from backend.services.errors import Conflict, NotFound, ValidationError, commit_or_raise
from backend.services.notifications import is_valid_email

logger = logging.getLogger(__name__)

_UNSET = object()


def coerce_role(value: Role | str) -> Role:
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        accepted = ", ".join(r.value for r in Role)
        raise ValidationError(f"Invalid role. Accepted values: {accepted}")


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("User name is required")
    return cleaned


def _clean_email(email: str | None) -> str:
    cleaned = (email or "").strip().lower()
    if not is_valid_email(cleaned):
        raise ValidationError("Invalid email format")
    return cleaned


def _ensure_email_free(db: Session, email: str, exclude_id: int | None = None) -> None:
    stmt = select(User.id).where(User.email == email)
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    if db.execute(stmt).first():
        raise Conflict("This email is already in use", code="DuplicateEmail")


def _admin_count(db: Session) -> int:
    return db.execute(select(func.count(User.id)).where(User.role == Role.admin)).scalar_one()


# ---------- READ ----------
def list_users(db: Session, actor: Actor) -> list[User]:
    require_role(actor, ANY_ROLE, "list users")
    return list(db.execute(select(User).order_by(User.created_at.desc(), User.id.desc())).scalars().all())


def get_user(db: Session, actor: Actor, user_id: int) -> User:
    """Fiche utilisateur avec ses demandes, les plus récentes d'abord."""
    require_role(actor, ANY_ROLE, "read users")
    user = db.execute(
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.requests).selectinload(Request.product))
    ).scalar_one_or_none()
    if not user:
        raise NotFound(f"User {user_id} not found")
    return user


# ---------- WRITE ----------
def create_user(
    db: Session,
    actor: Actor,
    *,
    name: str,
    email: str,
    role: Role | str | None = None,
    active: bool = True,
) -> User:
    require_role(actor, ADMIN_ONLY, "create users")

    name = _clean_name(name)
    email = _clean_email(email)
    role = Role.employee if role is None else coerce_role(role)
    _ensure_email_free(db, email)

    user = User(name=name, email=email, role=role, active=active)
    db.add(user)
    commit_or_raise(db, "creating user")
    db.refresh(user)

    logger.info("User created: %s (%s)", user.email, user.role.value)
    return user


def update_user(
    db: Session,
    actor: Actor,
    user_id: int,
    *,
    name: str | None = _UNSET,
    email: str | None = _UNSET,
    role: Role | str | None = _UNSET,
    active: bool | None = _UNSET,
) -> User:
    """
    Le propriétaire modifie son nom et son email ; le rôle et le statut actif
    restent réservés à un ADMIN.
    """
    require_owner_or_role(actor, user_id, ADMIN_ONLY, "update other users")
    if role is not _UNSET or active is not _UNSET:
        require_role(actor, ADMIN_ONLY, "change roles or activation")

    values = {}
    if name is not _UNSET:
        values["name"] = _clean_name(name)
    if email is not _UNSET:
        values["email"] = _clean_email(email)
    if role is not _UNSET:
        values["role"] = coerce_role(role)
    if active is not _UNSET:
        if active is None:
            raise ValidationError("active must be true or false")
        values["active"] = bool(active)
    if not values:
        raise ValidationError("No field to update")

    user = db.get(User, user_id)
    if not user:
        raise NotFound(f"User {user_id} not found")
    if "email" in values:
        _ensure_email_free(db, values["email"], exclude_id=user_id)

    demoted = user.role == Role.admin and values.get("role", Role.admin) != Role.admin
    if demoted and _admin_count(db) <= 1:
        raise Conflict("Cannot demote the last administrator", code="LastAdmin")

    for field, value in values.items():
        setattr(user, field, value)
    commit_or_raise(db, f"updating user {user_id}")
    db.refresh(user)

    logger.info("User %s updated: %s", user_id, ", ".join(sorted(values)))
    return user


def delete_user(db: Session, actor: Actor, user_id: int) -> None:
    require_role(actor, ADMIN_ONLY, "delete users")

    user = db.get(User, user_id)
    if not user:
        raise NotFound(f"User {user_id} not found")
    if user.role == Role.admin and _admin_count(db) <= 1:
        raise Conflict("Cannot delete the last administrator", code="LastAdmin")

    requests = db.execute(select(func.count(Request.id)).where(Request.user_id == user_id)).scalar_one()
    if requests:
        raise Conflict(f"Cannot delete: user has {requests} requests", code="HasDependents")

    email = user.email
    db.delete(user)
    commit_or_raise(db, "deleting user")
    logger.info("User deleted: %s", email)
