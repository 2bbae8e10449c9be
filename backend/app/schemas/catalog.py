from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class ProductBrief(BaseModel):
    id: int
    name: str
    sku: str
    quantity: int

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    quantity: int = Field(default=0, ge=0)
    alert_level: int = Field(default=0, ge=0)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    location: str | None = Field(default=None, max_length=128)
    category_id: int
    supplier_id: int | None = None


class ProductUpdate(BaseModel):
    sku: str | None = Field(default=None, min_length=1, max_length=64)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    quantity: int | None = Field(default=None, ge=0)
    alert_level: int | None = Field(default=None, ge=0)
    price: Decimal | None = Field(default=None, ge=0)
    location: str | None = Field(default=None, max_length=128)
    category_id: int | None = None
    supplier_id: int | None = None


class ProductRead(BaseModel):
    id: int
    sku: str
    name: str
    description: str | None
    quantity: int
    alert_level: int
    price: Decimal
    location: str | None
    category_id: int
    supplier_id: int | None
    low_stock: bool = False

    class Config:
        from_attributes = True


class SupplierBrief(BaseModel):
    id: int
    name: str
    email: str

    class Config:
        from_attributes = True


class SupplierCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    address: str | None = Field(default=None, max_length=255)
    category: str | None = Field(default=None, max_length=128)


class SupplierUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, min_length=3, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    address: str | None = Field(default=None, max_length=255)
    category: str | None = Field(default=None, max_length=128)


class SupplierRead(SupplierBrief):
    phone: str | None
    address: str | None
    category: str | None
    created_at: datetime


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    parent_id: int | None = None


class CategoryUpdate(BaseModel):
    # parent_id absent = inchangé, parent_id null = remonter à la racine
    name: str | None = Field(default=None, max_length=200)
    parent_id: int | None = None


class CategoryBrief(BaseModel):
    id: int
    name: str
    parent_id: int | None

    class Config:
        from_attributes = True


class CategoryRead(CategoryBrief):
    parent: CategoryBrief | None = None
    children: list[CategoryBrief] = Field(default_factory=list)
    products: list[ProductBrief] = Field(default_factory=list)
    children_count: int = 0
    products_count: int = 0


class CategoryTree(CategoryBrief):
    children: list["CategoryTree"] = Field(default_factory=list)
    products: list[ProductBrief] = Field(default_factory=list)


CategoryTree.model_rebuild()
