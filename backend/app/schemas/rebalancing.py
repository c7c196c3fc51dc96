from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, field_validator

from backend.app.models.dispatch import RebalancingPriority, RebalancingStatus


class RebalancingCreate(BaseModel):
    product_id: UUID
    source_store_id: UUID
    destination_store_id: UUID
    quantity: int
    reason: str | None = None
    priority: RebalancingPriority = RebalancingPriority.MEDIUM

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v


class RebalancingReject(BaseModel):
    rejection_reason: str

    @field_validator("rejection_reason")
    @classmethod
    def reason_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Rejection reason must not be empty")
        return v


class RebalancingOut(BaseModel):
    id: UUID
    product_id: UUID
    product_name: str
    source_store_id: UUID
    destination_store_id: UUID
    quantity: int
    reason: str | None
    priority: RebalancingPriority
    status: RebalancingStatus
    rejection_reason: str | None
    requested_by: UUID
    approved_by: UUID | None
    approved_at: datetime | None
    completed_at: datetime | None
    dispatch_id: UUID | None
    dispatch_number: str | None
    created_at: str


class RebalancingStatistics(BaseModel):
    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]
