from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from backend.app.db.models.core_types import RequestStatus, Role
from backend.app.schemas.catalog import ProductBrief


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=255)
    role: str | None = None
    active: bool = True


class UserUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    email: str | None = Field(default=None, max_length=255)
    role: str | None = None
    active: bool | None = None


class UserRead(BaseModel):
    id: int
    name: str
    email: str
    role: Role
    active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UserRequestSummary(BaseModel):
    id: int
    quantity: int
    reason: str | None
    status: RequestStatus
    created_at: datetime
    product: ProductBrief

    class Config:
        from_attributes = True


class UserDetail(UserRead):
    requests: list[UserRequestSummary] = Field(default_factory=list)
