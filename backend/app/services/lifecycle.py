"""Status state machines for inventory items, dispatches and rebalancing.

Every status change in the services goes through :func:`transition`, which
refuses anything not listed in the tables below.
"""

from __future__ import annotations

import enum
from typing import TypeVar

from backend.app.core.errors import InvalidTransitionError
from backend.app.models.dispatch import DispatchStatus, RebalancingStatus
from backend.app.models.inventory import InventoryItemStatus

S = TypeVar("S", bound=enum.Enum)

INVENTORY_ITEM_TRANSITIONS: dict[InventoryItemStatus, frozenset[InventoryItemStatus]] = {
    InventoryItemStatus.IN_STOCK: frozenset(
        {InventoryItemStatus.DEFECTIVE, InventoryItemStatus.SOLD}
    ),
    # Customer return of a sold unit
    InventoryItemStatus.SOLD: frozenset({InventoryItemStatus.DEFECTIVE}),
    # Defect record withdrawn
    InventoryItemStatus.DEFECTIVE: frozenset({InventoryItemStatus.IN_STOCK}),
}

DISPATCH_TRANSITIONS: dict[DispatchStatus, frozenset[DispatchStatus]] = {
    DispatchStatus.PENDING: frozenset({DispatchStatus.APPROVED, DispatchStatus.CANCELLED}),
    DispatchStatus.APPROVED: frozenset(
        {DispatchStatus.IN_TRANSIT, DispatchStatus.CANCELLED}
    ),
    DispatchStatus.IN_TRANSIT: frozenset({DispatchStatus.DELIVERED}),
    DispatchStatus.DELIVERED: frozenset(),
    DispatchStatus.CANCELLED: frozenset(),
}

REBALANCING_TRANSITIONS: dict[RebalancingStatus, frozenset[RebalancingStatus]] = {
    RebalancingStatus.PENDING: frozenset(
        {
            RebalancingStatus.APPROVED,
            RebalancingStatus.REJECTED,
            RebalancingStatus.CANCELLED,
        }
    ),
    RebalancingStatus.APPROVED: frozenset(
        {RebalancingStatus.COMPLETED, RebalancingStatus.CANCELLED}
    ),
    RebalancingStatus.REJECTED: frozenset(),
    RebalancingStatus.CANCELLED: frozenset(),
    RebalancingStatus.COMPLETED: frozenset(),
}


def can_transition(table: dict[S, frozenset[S]], current: S, target: S) -> bool:
    return target in table.get(current, frozenset())


def transition(
    resource: str, table: dict[S, frozenset[S]], current: S, target: S
) -> S:
    """Return *target* if ``current -> target`` is allowed, else raise."""
    if not can_transition(table, current, target):
        raise InvalidTransitionError(resource, current.value, target.value)
    return target
