from __future__ import annotations

from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.app.models.order import OrderStatus, OrderType


# ─── Request Schemas ──────────────────────────────────────────────────────────


class OrderItemCreate(BaseModel):
    product_name: str
    size: str | None = None
    barcode: str | None = None
    qty: int
    price: Decimal
    discount: Decimal = Decimal("0")

    @field_validator("qty")
    @classmethod
    def qty_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("qty must be greater than 0")
        return v

    @field_validator("price", "discount")
    @classmethod
    def money_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Amount must be non-negative")
        return v


class DeliveryAddress(BaseModel):
    division: str | None = None
    district: str | None = None
    city: str | None = None
    zone: str | None = None
    area: str | None = None
    address: str | None = None
    postal_code: str | None = None


class OrderCreate(BaseModel):
    order_type: OrderType = OrderType.SOCIAL_COMMERCE
    store_id: UUID | None = None
    customer_name: str
    customer_phone: str | None = None
    customer_email: str | None = None
    delivery_address: DeliveryAddress | None = None
    sales_by: str | None = None
    notes: str | None = None
    items: list[OrderItemCreate] = Field(min_length=1)
    # Falls back to the configured default rate when omitted
    vat_rate: Decimal | None = None
    transport_cost: Decimal | None = None
    cash_paid: Decimal = Decimal("0")
    card_paid: Decimal = Decimal("0")
    transaction_id: str | None = None

    @field_validator("customer_name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Customer name must not be empty")
        return v

    @field_validator("vat_rate", "transport_cost", "cash_paid", "card_paid")
    @classmethod
    def non_negative(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v < 0:
            raise ValueError("Amount must be non-negative")
        return v


class PaymentCreate(BaseModel):
    method: Literal["cash", "card"]
    amount: Decimal = Field(gt=0)
    transaction_id: str | None = None


# ─── Exchange (camelCase on the wire, as the storefront sends it) ────────────


class RemovedProductIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId")
    quantity: int

    @field_validator("product_id", mode="before")
    @classmethod
    def id_to_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, (int, UUID)) else v

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("quantity must be greater than 0")
        return v


class ReplacementProductIn(BaseModel):
    name: str
    size: str | None = None
    quantity: int
    price: Decimal

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("quantity must be greater than 0")
        return v

    @field_validator("price")
    @classmethod
    def price_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("price must be non-negative")
        return v


class ExchangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Optional here so a missing id is reported as 400, not a schema error
    order_id: str | None = Field(default=None, alias="orderId")
    removed_products: list[RemovedProductIn] = Field(
        default_factory=list, alias="removedProducts"
    )
    replacement_products: list[ReplacementProductIn] = Field(
        default_factory=list, alias="replacementProducts"
    )

    @field_validator("order_id", mode="before")
    @classmethod
    def id_to_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, (int, UUID)) else v


# ─── Response Schemas ─────────────────────────────────────────────────────────


class OrderItemOut(BaseModel):
    id: UUID
    product_name: str
    size: str | None
    barcode: str | None
    qty: int
    price: Decimal
    discount: Decimal
    amount: Decimal

    class Config:
        from_attributes = True


class ExchangeRecordOut(BaseModel):
    date: str
    removed_products: list[dict[str, Any]]
    replacement_products: list[dict[str, Any]]
    unmatched_removals: list[dict[str, Any]]
    original_total: Decimal
    new_total: Decimal
    difference: Decimal
    note: str


class OrderAmountsOut(BaseModel):
    subtotal: Decimal
    total_discount: Decimal
    vat: Decimal
    vat_rate: Decimal
    transport_cost: Decimal
    total: Decimal


class OrderPaymentsOut(BaseModel):
    cash: Decimal
    card: Decimal
    total_paid: Decimal
    due: Decimal
    transaction_id: str | None


class OrderOut(BaseModel):
    id: UUID
    order_number: str
    order_type: OrderType
    status: OrderStatus
    store_id: UUID | None
    customer_name: str
    customer_phone: str | None
    customer_email: str | None
    delivery_address: dict[str, Any] | None
    sales_by: str | None
    notes: str | None
    products: list[OrderItemOut]
    amounts: OrderAmountsOut
    payments: OrderPaymentsOut
    exchange_history: list[ExchangeRecordOut]
    created_at: str
    updated_at: str


class ExchangeOut(BaseModel):
    """Exchange response.

    The envelope keys (``totalDue``, ``unmatchedRemovals``) are camelCase like
    the storefront request; ``order`` is the same snake_case :class:`OrderOut`
    every other order route returns.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "Exchange processed successfully!"
    order: OrderOut
    difference: Decimal
    total_due: Decimal = Field(alias="totalDue")
    unmatched_removals: list[dict[str, Any]] = Field(alias="unmatchedRemovals")
