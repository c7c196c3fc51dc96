from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
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
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.core.database import Base
from backend.app.models.store import Store


class InventoryItemStatus(str, enum.Enum):
    IN_STOCK = "in_stock"
    DEFECTIVE = "defective"
    SOLD = "sold"


class DefectStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    SOLD = "sold"
    DISPOSED = "disposed"


class Product(Base):
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    category: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (Index("ix_products_sku", "sku"),)


class Batch(Base):
    """A lot of one product received at one store.

    ``quantity`` is the stock count of the lot at that store.  The same
    ``batch_number`` may exist at several stores once units have been
    dispatched between them.
    """

    __tablename__ = "batches"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id"), nullable=False
    )
    store_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("stores.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    sell_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    manufactured_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    product: Mapped[Product] = relationship()
    store: Mapped[Store] = relationship()
    items: Mapped[list[InventoryItem]] = relationship(back_populates="batch")

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_batch_quantity_non_negative"),
        CheckConstraint("cost_price >= 0", name="ck_batch_cost_price_non_negative"),
        CheckConstraint("sell_price >= 0", name="ck_batch_sell_price_non_negative"),
        UniqueConstraint("batch_number", "store_id", name="uq_batch_number_store"),
        Index("ix_batches_product", "product_id"),
        Index("ix_batches_store", "store_id"),
    )


class InventoryItem(Base):
    """A single barcoded unit."""

    __tablename__ = "inventory_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    barcode: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    batch_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("batches.id"), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id"), nullable=False
    )
    store_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("stores.id"), nullable=False)
    status: Mapped[InventoryItemStatus] = mapped_column(
        Enum(InventoryItemStatus), nullable=False, default=InventoryItemStatus.IN_STOCK
    )
    cost_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    selling_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    order_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("orders.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    batch: Mapped[Batch] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()

    __table_args__ = (
        Index("ix_inventory_items_barcode", "barcode"),
        Index("ix_inventory_items_status", "status"),
        Index("ix_inventory_items_batch", "batch_id"),
    )


class Defect(Base):
    """A defective unit, reported from a barcode scan or a customer return.

    Keys of the reporting payload that have no column of their own are kept
    verbatim in ``details``.
    """

    __tablename__ = "defects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    barcode: Mapped[str] = mapped_column(
        ForeignKey("inventory_items.barcode"), nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id"), nullable=False
    )
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[DefectStatus] = mapped_column(
        Enum(DefectStatus), nullable=False, default=DefectStatus.PENDING
    )
    store_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("stores.id"), nullable=True
    )
    added_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("employees.id"), nullable=True
    )
    original_order_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("orders.id"), nullable=True
    )
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cost_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    original_selling_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    selling_price: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )
    return_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_defects_barcode", "barcode"),
        Index("ix_defects_store", "store_id"),
        Index("ix_defects_status", "status"),
    )
