from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from backend.app.models.inventory import DefectStatus

CUSTOMER_RETURN = "customer_return"


class DefectReport(BaseModel):
    """Payload of a defect scan or a customer return.

    Fields the model does not declare are accepted and stored on the defect
    as ``details``.
    """

    model_config = ConfigDict(extra="allow")

    # Optional so that a missing value is a 400 from the service
    barcode: str | None = None
    reason: str | None = None
    store_id: UUID | None = None
    # Order id or order number of the original sale
    order_id: str | None = None
    customer_phone: str | None = None
    return_reason: str | None = None
    notes: str | None = None

    @field_validator("order_id", mode="before")
    @classmethod
    def id_to_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, (int, UUID)) else v


class DefectUpdate(BaseModel):
    status: DefectStatus | None = None
    selling_price: Decimal | None = None
    notes: str | None = None

    @field_validator("selling_price")
    @classmethod
    def price_non_negative(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v < 0:
            raise ValueError("Selling price must be non-negative")
        return v


class DefectOut(BaseModel):
    id: UUID
    barcode: str
    product_id: UUID
    product_name: str
    reason: str
    status: DefectStatus
    store_id: UUID | None
    added_by: UUID | None
    original_order_id: UUID | None
    customer_phone: str | None
    cost_price: Decimal
    original_selling_price: Decimal
    selling_price: Decimal | None
    return_reason: str | None
    notes: str | None
    details: dict[str, Any] | None
    added_at: datetime

    class Config:
        from_attributes = True
