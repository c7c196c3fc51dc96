from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, field_validator

from backend.app.models.inventory import InventoryItemStatus


class ProductCreate(BaseModel):
    name: str
    sku: str
    category: str | None = None
    description: str | None = None


class ProductOut(BaseModel):
    id: UUID
    name: str
    sku: str
    category: str | None
    description: str | None

    class Config:
        from_attributes = True


# ─── Batches ──────────────────────────────────────────────────────────────────


class BatchCreate(BaseModel):
    product_id: UUID
    store_id: UUID
    quantity: int
    cost_price: Decimal
    sell_price: Decimal
    manufactured_date: date | None = None
    expiry_date: date | None = None
    # One barcoded inventory item per unit
    generate_barcodes: bool = True
    notes: str | None = None

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v

    @field_validator("cost_price", "sell_price")
    @classmethod
    def price_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Price must be non-negative")
        return v


class StockAdjustment(BaseModel):
    adjustment: int
    reason: str

    @field_validator("adjustment")
    @classmethod
    def not_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("Adjustment must not be zero")
        return v

    @field_validator("reason")
    @classmethod
    def reason_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Reason must not be empty")
        return v


class BatchOut(BaseModel):
    id: UUID
    batch_number: str
    product_id: UUID
    product_name: str
    store_id: UUID
    store_name: str
    quantity: int
    cost_price: Decimal
    sell_price: Decimal
    total_value: Decimal
    sell_value: Decimal
    is_active: bool
    manufactured_date: date | None
    expiry_date: date | None
    barcodes: list[str]
    created_at: str


# ─── Inventory items ─────────────────────────────────────────────────────────


class InventoryItemOut(BaseModel):
    id: UUID
    barcode: str
    batch_id: UUID
    product_id: UUID
    store_id: UUID
    status: InventoryItemStatus
    cost_price: Decimal
    selling_price: Decimal
    order_id: UUID | None

    class Config:
        from_attributes = True


class MarkSoldRequest(BaseModel):
    order_id: UUID | None = None
