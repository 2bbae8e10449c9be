from __future__ import annotations

from typing import Generator

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from backend.app.core.config import settings
from backend.app.db.models.core_types import Role
from backend.app.db.session import SessionLocal
from backend.services.access import Actor
from backend.services.confirmation_tokens import ConfirmationTokenService, SigningContext
from backend.services.errors import Unauthorized
from backend.services.notifications import Notifier, build_notifier
from backend.services.order_workflow import SupplierLinks

bearer = HTTPBearer(auto_error=False)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor(credentials: HTTPAuthorizationCredentials | None = Depends(bearer)) -> Actor:
    """Decode the identity token issued by the auth service (id + role claims)."""
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Missing authentication token", code="AuthRequired")
    try:
        payload = jwt.decode(credentials.credentials, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        return Actor(user_id=int(payload["id"]), role=Role(payload["role"]))
    except JWTError as exc:
        raise Unauthorized("Invalid or expired token", code="TokenInvalid") from exc
    except (KeyError, TypeError, ValueError) as exc:
        raise Unauthorized("Invalid token structure", code="TokenInvalid") from exc


def get_token_service() -> ConfirmationTokenService:
    return ConfirmationTokenService(SigningContext.from_settings(settings))


def get_notifier() -> Notifier:
    return build_notifier(settings)


def get_supplier_links() -> SupplierLinks:
    return SupplierLinks(base_url=settings.PUBLIC_BASE_URL, app_name=settings.APP_NAME)
