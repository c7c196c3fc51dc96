from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.core.database import Base
from backend.app.models.inventory import Batch, Product
from backend.app.models.store import Store


# ─── Enums ────────────────────────────────────────────────────────────────────


class DispatchStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class RebalancingStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class RebalancingPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# ─── Dispatch (Header) ───────────────────────────────────────────────────────


class Dispatch(Base):
    """A shipment of batch stock from one store to another.

    Stock leaves the source batches when the dispatch goes ``in_transit``
    and lands in the destination batches on ``delivered``.
    """

    __tablename__ = "dispatches"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    dispatch_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    status: Mapped[DispatchStatus] = mapped_column(
        Enum(DispatchStatus), nullable=False, default=DispatchStatus.PENDING
    )
    source_store_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("stores.id"), nullable=False
    )
    destination_store_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("stores.id"), nullable=False
    )
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    carrier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("employees.id"), nullable=False
    )
    approved_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("employees.id"), nullable=True
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    dispatched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delivered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    source_store: Mapped[Store] = relationship(foreign_keys=[source_store_id])
    destination_store: Mapped[Store] = relationship(foreign_keys=[destination_store_id])
    items: Mapped[list[DispatchItem]] = relationship(
        back_populates="dispatch", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "source_store_id != destination_store_id",
            name="ck_dispatch_different_stores",
        ),
        Index("ix_dispatches_status", "status"),
        Index("ix_dispatches_source", "source_store_id"),
        Index("ix_dispatches_destination", "destination_store_id"),
    )


class DispatchItem(Base):
    __tablename__ = "dispatch_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    dispatch_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("dispatches.id"), nullable=False
    )
    batch_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("batches.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    received_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    damaged_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    missing_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    unit_cost: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )

    dispatch: Mapped[Dispatch] = relationship(back_populates="items")
    batch: Mapped[Batch] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_dispatch_item_qty_positive"),
        Index("ix_dispatch_items_dispatch", "dispatch_id"),
    )


# ─── Inventory rebalancing ───────────────────────────────────────────────────


class RebalancingRequest(Base):
    """A request to move stock of one product between stores.

    Approval materialises the move as a :class:`Dispatch`.
    """

    __tablename__ = "rebalancing_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id"), nullable=False
    )
    source_store_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("stores.id"), nullable=False
    )
    destination_store_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("stores.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[RebalancingPriority] = mapped_column(
        Enum(RebalancingPriority), nullable=False, default=RebalancingPriority.MEDIUM
    )
    status: Mapped[RebalancingStatus] = mapped_column(
        Enum(RebalancingStatus), nullable=False, default=RebalancingStatus.PENDING
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    requested_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("employees.id"), nullable=False
    )
    approved_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("employees.id"), nullable=True
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    dispatch_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("dispatches.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    product: Mapped[Product] = relationship()
    dispatch: Mapped[Dispatch | None] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_rebalancing_qty_positive"),
        CheckConstraint(
            "source_store_id != destination_store_id",
            name="ck_rebalancing_different_stores",
        ),
        Index("ix_rebalancing_status", "status"),
    )
