"""
Order confirmation tokens.

A token is a short-lived JWT bound to one order id. It only authorizes the
supplier to confirm or reject that order; single use is enforced by the
order's token_used flag, not by the token itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from backend.app.core.config import Settings
from backend.services.errors import Conflict, Forbidden

PURPOSE = "order-confirmation"


@dataclass(frozen=True)
class SigningContext:
    secret: str
    algorithm: str = "HS256"
    ttl: timedelta = timedelta(hours=24)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SigningContext":
        return cls(
            secret=settings.CONFIRMATION_TOKEN_SECRET,
            algorithm=settings.CONFIRMATION_TOKEN_ALGORITHM,
            ttl=timedelta(hours=settings.CONFIRMATION_TOKEN_TTL_HOURS),
        )


class TokenExpired(Conflict):
    default_code = "TokenExpired"


class TokenInvalid(Forbidden):
    default_code = "TokenInvalid"


class TokenMismatch(Conflict):
    default_code = "TokenMismatch"


class ConfirmationTokenService:
    def __init__(self, context: SigningContext):
        self.context = context

    def mint(self, order_id: int, now: datetime | None = None) -> str:
        issued = now or datetime.now(timezone.utc)
        payload = {
            "orderId": int(order_id),
            "purpose": PURPOSE,
            "iat": issued,
            "exp": issued + self.context.ttl,
        }
        return jwt.encode(payload, self.context.secret, algorithm=self.context.algorithm)

    def verify(self, token: str) -> int:
        """Return the order id the token was minted for."""
        if not token:
            raise TokenInvalid("Missing token")
        try:
            payload = jwt.decode(token, self.context.secret, algorithms=[self.context.algorithm])
        except ExpiredSignatureError as exc:
            raise TokenExpired("This link has expired") from exc
        except JWTError as exc:
            raise TokenInvalid("Invalid token") from exc

        order_id = payload.get("orderId")
        if payload.get("purpose") != PURPOSE or not isinstance(order_id, int):
            raise TokenInvalid("Invalid token")
        return order_id

    def verify_for(self, token: str, order_id: int) -> int:
        """verify() plus the binding check against the order id from the link."""
        decoded = self.verify(token)
        if decoded != int(order_id):
            raise TokenMismatch(f"Token is not valid for order {order_id}")
        return decoded
