"""Order exchange reconciliation.

An exchange returns some units of an order and adds replacement products.
:func:`reconcile_exchange` does the arithmetic on plain line items without
touching the database; :func:`apply_exchange` loads the order, runs the
reconciliation and writes the new snapshot plus its exchange record in a
single commit.
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.errors import InvalidArgumentError
from backend.app.models.order import Order, OrderExchange, OrderItem, OrderStatus
from backend.app.services import records
from backend.app.services.audit import log_action
from backend.app.services.calculator import (
    ZERO,
    LineItem,
    OrderAmounts,
    calculate_amounts,
    calculate_due,
    line_amount,
)
from backend.app.services.orders import order_to_out

logger = logging.getLogger(__name__)

NOTE_CUSTOMER_OWES = "Customer owes additional payment"
NOTE_REFUND = "Refund to customer"
NOTE_NO_DIFFERENCE = "No payment difference"

DEFAULT_REPLACEMENT_SIZE = "1"


@dataclass(frozen=True)
class RemovedProduct:
    product_id: str
    quantity: int


@dataclass(frozen=True)
class ReplacementProduct:
    name: str
    quantity: int
    price: Decimal
    size: str | None = None


@dataclass
class ExchangeOutcome:
    items: list[LineItem]
    amounts: OrderAmounts
    due: Decimal
    original_total: Decimal
    difference: Decimal
    note: str
    unmatched_removals: list[RemovedProduct] = field(default_factory=list)


def classify_difference(difference: Decimal) -> str:
    if difference > 0:
        return NOTE_CUSTOMER_OWES
    if difference < 0:
        return NOTE_REFUND
    return NOTE_NO_DIFFERENCE


def _new_line_id() -> str:
    return str(uuid.uuid4())


def _same_line(line_id: str, product_id: str) -> bool:
    # Line ids are UUID text; clients may send them upper-cased
    return str(line_id).strip().lower() == str(product_id).strip().lower()


def reconcile_exchange(
    items: Iterable[LineItem],
    original_total: Decimal,
    vat_rate: Decimal,
    transport_cost: Decimal,
    total_paid: Decimal,
    removed: Iterable[RemovedProduct],
    replacements: Iterable[ReplacementProduct],
    new_id: Callable[[], str] = _new_line_id,
) -> ExchangeOutcome:
    """Apply removals then replacements to a copy of *items*.

    Removals match the first line whose id equals ``product_id`` (ignoring
    case); a removal that matches nothing changes nothing and is reported
    back in ``unmatched_removals``.  Removing at least the line's quantity drops the
    line; otherwise its quantity shrinks and the amount is recomputed with
    the line's discount left as is.

    Replacements merge into the first line with the same product name
    (case-insensitive) or are appended as new lines without discount.
    """
    working = [copy.copy(item) for item in items]
    unmatched: list[RemovedProduct] = []

    for removal in removed:
        index = next(
            (
                i
                for i, item in enumerate(working)
                if _same_line(item.id, removal.product_id)
            ),
            None,
        )
        if index is None:
            unmatched.append(removal)
            continue
        item = working[index]
        if removal.quantity >= item.qty:
            del working[index]
        else:
            item.qty -= removal.quantity
            item.recalculate()

    for replacement in replacements:
        wanted = replacement.name.lower()
        existing = next(
            (item for item in working if item.product_name.lower() == wanted), None
        )
        if existing is not None:
            existing.qty += replacement.quantity
            existing.recalculate()
        else:
            working.append(
                LineItem(
                    id=new_id(),
                    product_name=replacement.name,
                    size=replacement.size or DEFAULT_REPLACEMENT_SIZE,
                    qty=replacement.quantity,
                    price=replacement.price,
                    discount=ZERO,
                    amount=line_amount(replacement.price, replacement.quantity),
                )
            )

    amounts = calculate_amounts(working, vat_rate, transport_cost)
    difference = amounts.total - original_total

    return ExchangeOutcome(
        items=working,
        amounts=amounts,
        due=calculate_due(amounts.total, total_paid),
        original_total=original_total,
        difference=difference,
        note=classify_difference(difference),
        unmatched_removals=unmatched,
    )


# ─── Persistence ─────────────────────────────────────────────────────────────


def _to_line_item(row: OrderItem) -> LineItem:
    return LineItem(
        id=str(row.id),
        product_name=row.product_name,
        size=row.size,
        barcode=row.barcode,
        qty=row.qty,
        price=Decimal(str(row.price)),
        discount=Decimal(str(row.discount)),
        amount=Decimal(str(row.amount)),
    )


def _parse_removed(raw: Iterable[Mapping[str, Any]]) -> list[RemovedProduct]:
    return [
        RemovedProduct(product_id=str(r["product_id"]), quantity=int(r["quantity"]))
        for r in raw
    ]


def _parse_replacements(raw: Iterable[Mapping[str, Any]]) -> list[ReplacementProduct]:
    return [
        ReplacementProduct(
            name=r["name"],
            quantity=int(r["quantity"]),
            price=Decimal(str(r["price"])),
            size=r.get("size"),
        )
        for r in raw
    ]


def _sync_items(order: Order, items: list[LineItem]) -> None:
    """Make ``order.items`` mirror *items* (same ids, same display order)."""
    rows_by_id = {str(row.id): row for row in order.items}
    kept: list[OrderItem] = []
    for position, item in enumerate(items):
        row = rows_by_id.get(item.id)
        if row is None:
            row = OrderItem(id=UUID(item.id), product_name=item.product_name)
        row.position = position
        row.product_name = item.product_name
        row.size = item.size
        row.barcode = item.barcode
        row.qty = item.qty
        row.price = item.price
        row.discount = item.discount
        row.amount = item.amount
        kept.append(row)
    # delete-orphan cascade removes the rows left out
    order.items = kept


def apply_exchange(
    db: Session,
    order_id: UUID | str | None,
    removed_products: Iterable[Mapping[str, Any]],
    replacement_products: Iterable[Mapping[str, Any]],
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> dict:
    """Exchange items on an order and persist the recalculated snapshot.

    Returns ``{"order", "difference", "total_due", "unmatched_removals"}``.
    Raises InvalidArgumentError for a missing order id, NotFoundError for an
    unknown order and StorageError if the write fails (nothing persisted).
    """
    if order_id is None or str(order_id).strip() == "":
        raise InvalidArgumentError("Missing order ID")

    removed = _parse_removed(removed_products)
    replacements = _parse_replacements(replacement_products)

    order = records.get_order(db, order_id, for_update=True)
    if order.status == OrderStatus.CANCELLED:
        raise InvalidArgumentError("Cannot exchange items on a cancelled order")

    outcome = reconcile_exchange(
        items=[_to_line_item(row) for row in order.items],
        original_total=Decimal(str(order.total)),
        vat_rate=Decimal(str(order.vat_rate)),
        transport_cost=Decimal(str(order.transport_cost)),
        total_paid=Decimal(str(order.total_paid)),
        removed=removed,
        replacements=replacements,
    )

    _sync_items(order, outcome.items)
    order.subtotal = outcome.amounts.subtotal
    order.total_discount = outcome.amounts.total_discount
    order.vat = outcome.amounts.vat
    order.transport_cost = outcome.amounts.transport_cost
    order.total = outcome.amounts.total
    order.due = outcome.due

    unmatched = [
        {"product_id": u.product_id, "quantity": u.quantity}
        for u in outcome.unmatched_removals
    ]
    order.exchanges.append(
        OrderExchange(
            sequence=len(order.exchanges) + 1,
            exchanged_at=datetime.now(timezone.utc),
            removed_products=[
                {"product_id": r.product_id, "quantity": r.quantity} for r in removed
            ],
            replacement_products=[
                {
                    "name": r.name,
                    "size": r.size,
                    "quantity": r.quantity,
                    "price": str(r.price),
                }
                for r in replacements
            ],
            unmatched_removals=unmatched,
            original_total=outcome.original_total,
            new_total=outcome.amounts.total,
            difference=outcome.difference,
            note=outcome.note,
            created_by=user_id,
        )
    )
    records.replace_order(db, order)

    log_action(
        db,
        user_id=user_id,
        action="ORDER_EXCHANGED",
        resource_type="orders",
        resource_id=order.order_number,
        ip_address=ip_address,
        changes={
            "original_total": str(outcome.original_total),
            "new_total": str(outcome.amounts.total),
            "difference": str(outcome.difference),
            "note": outcome.note,
            "removed": len(removed),
            "replacements": len(replacements),
            "unmatched_removals": unmatched,
        },
    )

    records.commit(db, "apply exchange")
    db.refresh(order)

    if unmatched:
        logger.warning(
            "Exchange on order %s ignored %d unmatched removal(s)",
            order.order_number,
            len(unmatched),
        )
    logger.info(
        "Exchange applied to order %s: %s -> %s (%s)",
        order.order_number,
        outcome.original_total,
        outcome.amounts.total,
        outcome.note,
    )

    return {
        "order": order_to_out(order),
        "difference": outcome.difference,
        "total_due": outcome.due,
        "unmatched_removals": unmatched,
    }
