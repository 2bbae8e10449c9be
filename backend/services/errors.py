"""
Domain errors raised by the services.

The API layer maps each kind to a stable HTTP status; services never raise
HTTPException themselves.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class DomainError(Exception):
    status_code = 500
    default_code = "Error"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(DomainError):
    status_code = 400
    default_code = "ValidationError"


class NotFound(DomainError):
    status_code = 404
    default_code = "NotFound"


class Conflict(DomainError):
    status_code = 409
    default_code = "Conflict"


class Unauthorized(DomainError):
    status_code = 401
    default_code = "Unauthorized"


class Forbidden(DomainError):
    status_code = 403
    default_code = "Forbidden"


class Unexpected(DomainError):
    status_code = 500
    default_code = "Unexpected"


def commit_or_raise(db: Session, what: str) -> None:
    """Commit the session, rolling back and raising Unexpected on store failure."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Store failure while %s", what)
        raise Unexpected(f"Store failure while {what}") from exc
