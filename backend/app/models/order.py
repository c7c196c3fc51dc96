from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
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
from backend.app.models.store import Store


class OrderType(str, enum.Enum):
    SOCIAL_COMMERCE = "social_commerce"
    ECOMMERCE = "ecommerce"
    POS = "pos"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# ─── Order (Header) ──────────────────────────────────────────────────────────


class Order(Base):
    """A customer order with its derived amounts and payment position.

    Amount columns are always derived from the line items by the order
    calculator; never set them by hand.  Invariants after every mutation:
    ``total == subtotal + vat + transport_cost`` and
    ``due == total - total_paid``.
    """

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    order_type: Mapped[OrderType] = mapped_column(
        Enum(OrderType), nullable=False, default=OrderType.SOCIAL_COMMERCE
    )
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING
    )
    store_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("stores.id"), nullable=True
    )
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    delivery_address: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    sales_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    total_discount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    vat_rate: Mapped[Decimal] = mapped_column(
        Numeric(precision=7, scale=4), nullable=False, default=Decimal("0")
    )
    vat: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    transport_cost: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    total: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )

    cash_paid: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    card_paid: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    total_paid: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    # Negative when the customer has overpaid (refund owed)
    due: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("employees.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    store: Mapped[Store | None] = relationship()
    items: Mapped[list[OrderItem]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )
    exchanges: Mapped[list[OrderExchange]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderExchange.sequence",
    )

    __table_args__ = (
        Index("ix_orders_status", "status"),
        Index("ix_orders_store", "store_id"),
        Index("ix_orders_created_at", "created_at"),
    )


# ─── Order Item (Line Item) ──────────────────────────────────────────────────


class OrderItem(Base):
    """One product line.  ``amount == price * qty - discount``."""

    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    # Display order within the order
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    size: Mapped[str | None] = mapped_column(String(50), nullable=True)
    barcode: Mapped[str | None] = mapped_column(String(100), nullable=True)
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    discount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )

    order: Mapped[Order] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_order_item_qty_positive"),
        CheckConstraint("price >= 0", name="ck_order_item_price_non_negative"),
        CheckConstraint("discount >= 0", name="ck_order_item_discount_non_negative"),
        Index("ix_order_items_order", "order_id"),
    )


# ─── Exchange history ────────────────────────────────────────────────────────


class OrderExchange(Base):
    """Audit record of one exchange applied to an order.  Never updated."""

    __tablename__ = "order_exchanges"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    exchanged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    removed_products: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    replacement_products: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False
    )
    unmatched_removals: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    original_total: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    new_total: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    difference: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    note: Mapped[str] = mapped_column(String(100), nullable=False)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("employees.id"), nullable=True
    )

    order: Mapped[Order] = relationship(back_populates="exchanges")

    __table_args__ = (Index("ix_order_exchanges_order", "order_id"),)
