from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from backend.app.models.dispatch import DispatchStatus


# ─── Request Schemas ──────────────────────────────────────────────────────────


class DispatchCreate(BaseModel):
    source_store_id: UUID
    destination_store_id: UUID
    expected_delivery_date: date | None = None
    carrier_name: str | None = None
    tracking_number: str | None = None
    notes: str | None = None


class DispatchItemAdd(BaseModel):
    batch_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v


class DeliveredItem(BaseModel):
    item_id: UUID
    received_quantity: int = Field(ge=0)
    damaged_quantity: int = Field(default=0, ge=0)
    missing_quantity: int = Field(default=0, ge=0)


class DeliveryConfirm(BaseModel):
    # Omitted: every unit arrived in good condition
    items: list[DeliveredItem] | None = None


# ─── Response Schemas ─────────────────────────────────────────────────────────


class DispatchItemOut(BaseModel):
    id: UUID
    batch_id: UUID
    batch_number: str
    product_id: UUID
    product_name: str
    quantity: int
    received_quantity: int | None
    damaged_quantity: int | None
    missing_quantity: int | None
    unit_cost: Decimal
    unit_price: Decimal
    total_cost: Decimal
    total_value: Decimal


class DispatchOut(BaseModel):
    id: UUID
    dispatch_number: str
    status: DispatchStatus
    source_store_id: UUID
    source_store_name: str
    destination_store_id: UUID
    destination_store_name: str
    expected_delivery_date: date | None
    carrier_name: str | None
    tracking_number: str | None
    notes: str | None
    created_by: UUID
    approved_by: UUID | None
    approved_at: datetime | None
    dispatched_at: datetime | None
    delivered_at: datetime | None
    items: list[DispatchItemOut]
    total_items: int
    total_cost: Decimal
    total_value: Decimal
    created_at: str


class DispatchStatistics(BaseModel):
    total: int
    by_status: dict[str, int]
    items_in_transit: int
    value_in_transit: Decimal
