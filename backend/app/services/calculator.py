"""Order amount calculator.

Pure functions only: no database access and no mutation of the inputs.
The same line items, VAT rate and transport cost always give the same
amounts.

Rounding: line amounts are exact ``Decimal`` arithmetic; VAT is rounded to
a whole currency unit with ROUND_HALF_UP, which on ``Decimal`` rounds half
away from zero (e.g. 80.5 -> 81, -80.5 -> -81).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal("0")
WHOLE_UNIT = Decimal("1")
HUNDRED = Decimal("100")


@dataclass
class LineItem:
    id: str
    product_name: str
    qty: int
    price: Decimal
    discount: Decimal = ZERO
    size: str | None = None
    barcode: str | None = None
    amount: Decimal = field(default=ZERO)

    def recalculate(self) -> None:
        self.amount = line_amount(self.price, self.qty, self.discount)


@dataclass(frozen=True)
class OrderAmounts:
    subtotal: Decimal
    total_discount: Decimal
    vat_rate: Decimal
    vat: Decimal
    transport_cost: Decimal
    total: Decimal


def _money(value: Decimal | int | str | None) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def line_amount(
    price: Decimal | int | str, qty: int, discount: Decimal | int | str | None = None
) -> Decimal:
    """``price * qty - discount``; the discount is an absolute amount per line."""
    return _money(price) * qty - _money(discount)


def compute_vat(subtotal: Decimal, vat_rate: Decimal | int | str | None) -> Decimal:
    vat = _money(subtotal) * _money(vat_rate) / HUNDRED
    return vat.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)


def calculate_amounts(
    items: Iterable[LineItem],
    vat_rate: Decimal | int | str | None = None,
    transport_cost: Decimal | int | str | None = None,
) -> OrderAmounts:
    """Derive subtotal, discount, VAT and total from the line items.

    ``subtotal`` sums each item's stored ``amount``; call
    :meth:`LineItem.recalculate` first if an item was edited.
    Missing rate or transport cost count as zero.
    """
    items = list(items)
    rate = _money(vat_rate)
    transport = _money(transport_cost)

    subtotal = sum((_money(item.amount) for item in items), ZERO)
    total_discount = sum((_money(item.discount) for item in items), ZERO)
    vat = compute_vat(subtotal, rate)

    return OrderAmounts(
        subtotal=subtotal,
        total_discount=total_discount,
        vat_rate=rate,
        vat=vat,
        transport_cost=transport,
        total=subtotal + vat + transport,
    )


def calculate_due(total: Decimal, total_paid: Decimal | int | str | None) -> Decimal:
    """Outstanding balance; negative when the customer has overpaid."""
    return _money(total) - _money(total_paid)
