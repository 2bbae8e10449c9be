from __future__ import annotations

import logging
from dataclasses import dataclass

from backend.app.db.models.core_types import Role
from backend.services.errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)

WAREHOUSE_ROLES = frozenset({Role.admin, Role.storekeeper})
ADMIN_ONLY = frozenset({Role.admin})
ANY_ROLE = frozenset(Role)


@dataclass(frozen=True)
class Actor:
    """Who is calling. Supplied by the identity layer and trusted as is."""

    user_id: int
    role: Role


def require_role(actor: Actor | None, allowed: frozenset[Role], action: str) -> Actor:
    if actor is None:
        raise Unauthorized("Authentication required", code="AuthRequired")
    if actor.role not in allowed:
        logger.warning("Denied %s for user %s (%s)", action, actor.user_id, actor.role.value)
        raise Forbidden(
            f"Role {actor.role.value} may not {action}",
            code="InsufficientRole",
        )
    return actor


def require_owner_or_role(actor: Actor | None, owner_id: int, allowed: frozenset[Role], action: str) -> Actor:
    """Let the record's owner through, otherwise fall back to the role check."""
    if actor is not None and actor.user_id == owner_id:
        return actor
    return require_role(actor, allowed, action)
