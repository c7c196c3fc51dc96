from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func as sa_func
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.errors import InvalidArgumentError
from backend.app.models.order import Order, OrderItem, OrderStatus
from backend.app.schemas.orders import (
    ExchangeRecordOut,
    OrderAmountsOut,
    OrderCreate,
    OrderItemOut,
    OrderOut,
    OrderPaymentsOut,
    PaymentCreate,
)
from backend.app.services import records
from backend.app.services.audit import log_action
from backend.app.services.calculator import (
    LineItem,
    calculate_amounts,
    calculate_due,
    line_amount,
)

logger = logging.getLogger(__name__)


def generate_order_number(sequence: int, year: int) -> str:
    return f"ORD-{year}-{sequence:05d}"


def _next_order_number(db: Session, year: int) -> str:
    count = (
        db.query(sa_func.count(Order.id))
        .filter(Order.order_number.like(f"ORD-{year}-%"))
        .scalar()
    ) or 0
    return generate_order_number(count + 1, year)


# ─── Create ──────────────────────────────────────────────────────────────────


def create_order(
    db: Session,
    data: OrderCreate,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> OrderOut:
    """Place an order; every amount is derived from the line items."""
    if data.store_id is not None:
        records.get_store(db, data.store_id)

    vat_rate = data.vat_rate if data.vat_rate is not None else settings.DEFAULT_VAT_RATE
    transport_cost = (
        data.transport_cost
        if data.transport_cost is not None
        else settings.DEFAULT_TRANSPORT_COST
    )

    rows: list[OrderItem] = []
    lines: list[LineItem] = []
    for position, item in enumerate(data.items):
        amount = line_amount(item.price, item.qty, item.discount)
        rows.append(
            OrderItem(
                position=position,
                product_name=item.product_name,
                size=item.size,
                barcode=item.barcode,
                qty=item.qty,
                price=item.price,
                discount=item.discount,
                amount=amount,
            )
        )
        lines.append(
            LineItem(
                id=str(position),
                product_name=item.product_name,
                qty=item.qty,
                price=item.price,
                discount=item.discount,
                amount=amount,
            )
        )

    amounts = calculate_amounts(lines, vat_rate, transport_cost)
    total_paid = data.cash_paid + data.card_paid

    now = datetime.now(timezone.utc)
    order = Order(
        order_number=_next_order_number(db, now.year),
        order_type=data.order_type,
        status=OrderStatus.PENDING,
        store_id=data.store_id,
        customer_name=data.customer_name,
        customer_phone=data.customer_phone,
        customer_email=data.customer_email,
        delivery_address=(
            data.delivery_address.model_dump() if data.delivery_address else None
        ),
        sales_by=data.sales_by,
        notes=data.notes,
        subtotal=amounts.subtotal,
        total_discount=amounts.total_discount,
        vat_rate=amounts.vat_rate,
        vat=amounts.vat,
        transport_cost=amounts.transport_cost,
        total=amounts.total,
        cash_paid=data.cash_paid,
        card_paid=data.card_paid,
        total_paid=total_paid,
        due=calculate_due(amounts.total, total_paid),
        transaction_id=data.transaction_id,
        created_by=user_id,
        items=rows,
    )
    db.add(order)
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="ORDER_CREATED",
        resource_type="orders",
        resource_id=order.order_number,
        ip_address=ip_address,
        changes={
            "customer_name": data.customer_name,
            "item_count": len(rows),
            "total": str(amounts.total),
            "total_paid": str(total_paid),
        },
    )

    records.commit(db, "create order")
    db.refresh(order)
    logger.info("Order %s created, total %s", order.order_number, order.total)
    return order_to_out(order)


# ─── Read ────────────────────────────────────────────────────────────────────


def list_orders(
    db: Session,
    store_id: UUID | None = None,
    status: OrderStatus | None = None,
    limit: int = 100,
) -> list[OrderOut]:
    query = db.query(Order)
    if store_id is not None:
        query = query.filter(Order.store_id == store_id)
    if status is not None:
        query = query.filter(Order.status == status)
    rows = query.order_by(Order.created_at.desc()).limit(limit).all()
    return [order_to_out(o) for o in rows]


def get_order(db: Session, order_id: UUID | str) -> OrderOut:
    return order_to_out(records.get_order(db, order_id))


# ─── Payments & cancellation ─────────────────────────────────────────────────


def record_payment(
    db: Session,
    order_id: UUID | str,
    data: PaymentCreate,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> OrderOut:
    order = records.get_order(db, order_id, for_update=True)
    if order.status == OrderStatus.CANCELLED:
        raise InvalidArgumentError("Cannot record a payment on a cancelled order")

    if data.method == "cash":
        order.cash_paid = Decimal(str(order.cash_paid)) + data.amount
    else:
        order.card_paid = Decimal(str(order.card_paid)) + data.amount
    if data.transaction_id:
        order.transaction_id = data.transaction_id
    order.total_paid = Decimal(str(order.total_paid)) + data.amount
    order.due = calculate_due(Decimal(str(order.total)), order.total_paid)
    records.replace_order(db, order)

    log_action(
        db,
        user_id=user_id,
        action="ORDER_PAYMENT_RECORDED",
        resource_type="orders",
        resource_id=order.order_number,
        ip_address=ip_address,
        changes={
            "method": data.method,
            "amount": str(data.amount),
            "due": str(order.due),
        },
    )

    records.commit(db, "record payment")
    db.refresh(order)
    return order_to_out(order)


def cancel_order(
    db: Session,
    order_id: UUID | str,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> OrderOut:
    order = records.get_order(db, order_id, for_update=True)
    if order.status in (OrderStatus.CANCELLED, OrderStatus.DELIVERED):
        raise InvalidArgumentError(f"Cannot cancel an order that is {order.status.value}")

    order.status = OrderStatus.CANCELLED
    records.replace_order(db, order)

    log_action(
        db,
        user_id=user_id,
        action="ORDER_CANCELLED",
        resource_type="orders",
        resource_id=order.order_number,
        ip_address=ip_address,
        changes={"status": OrderStatus.CANCELLED.value},
    )

    records.commit(db, "cancel order")
    db.refresh(order)
    return order_to_out(order)


# ─── Serialisation ───────────────────────────────────────────────────────────


def order_to_out(order: Order) -> OrderOut:
    return OrderOut(
        id=order.id,
        order_number=order.order_number,
        order_type=order.order_type,
        status=order.status,
        store_id=order.store_id,
        customer_name=order.customer_name,
        customer_phone=order.customer_phone,
        customer_email=order.customer_email,
        delivery_address=order.delivery_address,
        sales_by=order.sales_by,
        notes=order.notes,
        products=[OrderItemOut.model_validate(item) for item in order.items],
        amounts=OrderAmountsOut(
            subtotal=order.subtotal,
            total_discount=order.total_discount,
            vat=order.vat,
            vat_rate=order.vat_rate,
            transport_cost=order.transport_cost,
            total=order.total,
        ),
        payments=OrderPaymentsOut(
            cash=order.cash_paid,
            card=order.card_paid,
            total_paid=order.total_paid,
            due=order.due,
            transaction_id=order.transaction_id,
        ),
        exchange_history=[
            ExchangeRecordOut(
                date=ex.exchanged_at.isoformat(),
                removed_products=ex.removed_products,
                replacement_products=ex.replacement_products,
                unmatched_removals=ex.unmatched_removals or [],
                original_total=ex.original_total,
                new_total=ex.new_total,
                difference=ex.difference,
                note=ex.note,
            )
            for ex in order.exchanges
        ],
        created_at=order.created_at.isoformat(),
        updated_at=order.updated_at.isoformat(),
    )
