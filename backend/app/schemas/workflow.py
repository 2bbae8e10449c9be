from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from backend.app.db.models.core_types import OrderStatus, RequestStatus, Role
from backend.app.schemas.catalog import ProductBrief, SupplierBrief


# ---------- Orders ----------
class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int


class OrderCreate(BaseModel):
    supplier_id: int
    items: list[OrderItemCreate] = Field(default_factory=list)


class OrderUpdate(BaseModel):
    status: str | None = None
    supplier_id: int | None = None


class OrderItemRead(BaseModel):
    id: int
    product_id: int
    quantity: int
    product: ProductBrief

    class Config:
        from_attributes = True


class OrderRead(BaseModel):
    id: int
    supplier_id: int
    status: OrderStatus
    token_used: bool
    created_at: datetime
    supplier: SupplierBrief
    items: list[OrderItemRead]

    class Config:
        from_attributes = True


# ---------- Requests ----------
class RequestCreate(BaseModel):
    product_id: int
    quantity: int
    reason: str | None = Field(default=None, max_length=500)
    user_id: int | None = None


class RequestUpdate(BaseModel):
    quantity: int | None = None
    reason: str | None = Field(default=None, max_length=500)


class RequestStatusUpdate(BaseModel):
    status: str


class UserBrief(BaseModel):
    id: int
    name: str
    email: str
    role: Role

    class Config:
        from_attributes = True


class RequestRead(BaseModel):
    id: int
    product_id: int
    user_id: int
    quantity: int
    reason: str | None
    status: RequestStatus
    created_at: datetime
    product: ProductBrief
    user: UserBrief

    class Config:
        from_attributes = True


class RequestStats(BaseModel):
    total: int
    by_status: dict[str, int]
