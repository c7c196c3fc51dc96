"""Store-to-store dispatches.

A dispatch is assembled while ``pending``, approved, shipped and finally
delivered.  Source batches lose their units when the dispatch is shipped;
the destination store gains the received units on delivery in a batch with
the same batch number, created if it does not exist there yet.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func as sa_func
from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.app.core.errors import InvalidArgumentError, NotFoundError
from backend.app.models.dispatch import Dispatch, DispatchItem, DispatchStatus
from backend.app.models.inventory import Batch
from backend.app.schemas.dispatch import (
    DeliveryConfirm,
    DispatchCreate,
    DispatchItemAdd,
    DispatchItemOut,
    DispatchOut,
    DispatchStatistics,
)
from backend.app.services import records
from backend.app.services.audit import log_action
from backend.app.services.lifecycle import DISPATCH_TRANSITIONS, transition

logger = logging.getLogger(__name__)


def generate_dispatch_number(sequence: int, year: int) -> str:
    return f"DSP-{year}-{sequence:05d}"


def _next_dispatch_number(db: Session, year: int) -> str:
    count = (
        db.query(sa_func.count(Dispatch.id))
        .filter(Dispatch.dispatch_number.like(f"DSP-{year}-%"))
        .scalar()
    ) or 0
    return generate_dispatch_number(count + 1, year)


def _get_dispatch(db: Session, dispatch_id: UUID) -> Dispatch:
    dispatch = db.query(Dispatch).filter(Dispatch.id == dispatch_id).first()
    if dispatch is None:
        raise NotFoundError("Dispatch not found")
    return dispatch


def _require_pending(dispatch: Dispatch) -> None:
    if dispatch.status != DispatchStatus.PENDING:
        raise InvalidArgumentError(
            f"Items can only be changed while the dispatch is pending "
            f"(currently {dispatch.status.value})"
        )


# ─── Staging helpers (no commit) ─────────────────────────────────────────────


def open_dispatch(
    db: Session,
    source_store_id: UUID,
    destination_store_id: UUID,
    created_by: UUID,
    expected_delivery_date: date | None = None,
    carrier_name: str | None = None,
    tracking_number: str | None = None,
    notes: str | None = None,
) -> Dispatch:
    """Stage a new pending dispatch between two existing, distinct stores."""
    if source_store_id == destination_store_id:
        raise InvalidArgumentError("Source and destination stores must be different")
    records.get_store(db, source_store_id, label="Source store")
    records.get_store(db, destination_store_id, label="Destination store")

    dispatch = Dispatch(
        dispatch_number=_next_dispatch_number(db, datetime.now(timezone.utc).year),
        status=DispatchStatus.PENDING,
        source_store_id=source_store_id,
        destination_store_id=destination_store_id,
        expected_delivery_date=expected_delivery_date,
        carrier_name=carrier_name,
        tracking_number=tracking_number,
        notes=notes,
        created_by=created_by,
    )
    db.add(dispatch)
    db.flush()
    return dispatch


def stage_batch_units(dispatch: Dispatch, batch: Batch, quantity: int) -> DispatchItem:
    """Put *quantity* units of *batch* on a pending dispatch.

    Repeated calls for the same batch grow the existing line.
    """
    _require_pending(dispatch)
    if batch.store_id != dispatch.source_store_id:
        raise InvalidArgumentError(
            f"Batch {batch.batch_number} is not held by the source store"
        )

    existing = next((i for i in dispatch.items if i.batch_id == batch.id), None)
    already = existing.quantity if existing is not None else 0
    if batch.quantity < already + quantity:
        raise InvalidArgumentError(
            f"Insufficient stock in batch {batch.batch_number}: "
            f"{batch.quantity - already} available, {quantity} requested"
        )

    if existing is not None:
        existing.quantity += quantity
        return existing

    item = DispatchItem(
        batch_id=batch.id,
        quantity=quantity,
        unit_cost=batch.cost_price,
        unit_price=batch.sell_price,
    )
    item.batch = batch
    dispatch.items.append(item)
    return item


# ─── Create & assemble ───────────────────────────────────────────────────────


def create_dispatch(
    db: Session,
    data: DispatchCreate,
    user_id: UUID,
    ip_address: str | None = None,
) -> DispatchOut:
    dispatch = open_dispatch(
        db,
        data.source_store_id,
        data.destination_store_id,
        created_by=user_id,
        expected_delivery_date=data.expected_delivery_date,
        carrier_name=data.carrier_name,
        tracking_number=data.tracking_number,
        notes=data.notes,
    )

    log_action(
        db,
        user_id=user_id,
        action="DISPATCH_CREATED",
        resource_type="dispatches",
        resource_id=dispatch.dispatch_number,
        ip_address=ip_address,
        changes={
            "source_store_id": str(data.source_store_id),
            "destination_store_id": str(data.destination_store_id),
        },
    )

    records.commit(db, "create dispatch")
    db.refresh(dispatch)
    logger.info("Dispatch %s created", dispatch.dispatch_number)
    return dispatch_to_out(dispatch)


def add_item(
    db: Session,
    dispatch_id: UUID,
    data: DispatchItemAdd,
    user_id: UUID,
    ip_address: str | None = None,
) -> DispatchOut:
    dispatch = _get_dispatch(db, dispatch_id)
    batch = records.get_batch(db, data.batch_id)
    stage_batch_units(dispatch, batch, data.quantity)

    log_action(
        db,
        user_id=user_id,
        action="DISPATCH_ITEM_ADDED",
        resource_type="dispatches",
        resource_id=dispatch.dispatch_number,
        ip_address=ip_address,
        changes={"batch": batch.batch_number, "quantity": data.quantity},
    )

    records.commit(db, "add dispatch item")
    db.refresh(dispatch)
    return dispatch_to_out(dispatch)


def remove_item(
    db: Session,
    dispatch_id: UUID,
    item_id: UUID,
    user_id: UUID,
    ip_address: str | None = None,
) -> DispatchOut:
    dispatch = _get_dispatch(db, dispatch_id)
    _require_pending(dispatch)

    item = next((i for i in dispatch.items if i.id == item_id), None)
    if item is None:
        raise NotFoundError("Dispatch item not found")
    # delete-orphan cascade removes the row
    dispatch.items.remove(item)

    log_action(
        db,
        user_id=user_id,
        action="DISPATCH_ITEM_REMOVED",
        resource_type="dispatches",
        resource_id=dispatch.dispatch_number,
        ip_address=ip_address,
        changes={"item_id": str(item_id), "quantity": item.quantity},
    )

    records.commit(db, "remove dispatch item")
    db.refresh(dispatch)
    return dispatch_to_out(dispatch)


# ─── Lifecycle ───────────────────────────────────────────────────────────────


def approve_dispatch(
    db: Session,
    dispatch_id: UUID,
    user_id: UUID,
    ip_address: str | None = None,
) -> DispatchOut:
    dispatch = _get_dispatch(db, dispatch_id)
    if not dispatch.items:
        raise InvalidArgumentError("Cannot approve a dispatch without items")
    dispatch.status = transition(
        "dispatch", DISPATCH_TRANSITIONS, dispatch.status, DispatchStatus.APPROVED
    )
    dispatch.approved_by = user_id
    dispatch.approved_at = datetime.now(timezone.utc)

    log_action(
        db,
        user_id=user_id,
        action="DISPATCH_APPROVED",
        resource_type="dispatches",
        resource_id=dispatch.dispatch_number,
        ip_address=ip_address,
        changes={"status": DispatchStatus.APPROVED.value},
    )

    records.commit(db, "approve dispatch")
    db.refresh(dispatch)
    logger.info("Dispatch %s approved", dispatch.dispatch_number)
    return dispatch_to_out(dispatch)


def mark_dispatched(
    db: Session,
    dispatch_id: UUID,
    user_id: UUID,
    ip_address: str | None = None,
) -> DispatchOut:
    """Ship the dispatch, taking its units out of the source batches."""
    dispatch = _get_dispatch(db, dispatch_id)
    status = transition(
        "dispatch", DISPATCH_TRANSITIONS, dispatch.status, DispatchStatus.IN_TRANSIT
    )

    for item in dispatch.items:
        batch = item.batch
        if batch.quantity < item.quantity:
            raise InvalidArgumentError(
                f"Insufficient stock in batch {batch.batch_number}: "
                f"{batch.quantity} available, {item.quantity} dispatched"
            )
    for item in dispatch.items:
        item.batch.quantity -= item.quantity

    dispatch.status = status
    dispatch.dispatched_at = datetime.now(timezone.utc)

    log_action(
        db,
        user_id=user_id,
        action="DISPATCH_SHIPPED",
        resource_type="dispatches",
        resource_id=dispatch.dispatch_number,
        ip_address=ip_address,
        changes={
            "status": DispatchStatus.IN_TRANSIT.value,
            "total_items": sum(i.quantity for i in dispatch.items),
        },
    )

    records.commit(db, "mark dispatch in transit")
    db.refresh(dispatch)
    logger.info("Dispatch %s in transit", dispatch.dispatch_number)
    return dispatch_to_out(dispatch)


def _destination_batch(db: Session, source: Batch, store_id: UUID) -> Batch:
    batch = (
        db.query(Batch)
        .filter(Batch.batch_number == source.batch_number, Batch.store_id == store_id)
        .first()
    )
    if batch is None:
        batch = Batch(
            batch_number=source.batch_number,
            product_id=source.product_id,
            store_id=store_id,
            quantity=0,
            cost_price=source.cost_price,
            sell_price=source.sell_price,
            manufactured_date=source.manufactured_date,
            expiry_date=source.expiry_date,
        )
        db.add(batch)
        db.flush()
    return batch


def mark_delivered(
    db: Session,
    dispatch_id: UUID,
    data: DeliveryConfirm | None,
    user_id: UUID,
    ip_address: str | None = None,
) -> DispatchOut:
    """Confirm delivery and book the received units at the destination.

    Per item, received + damaged + missing must equal the dispatched quantity.
    Items not mentioned in *data* count as fully received.
    """
    dispatch = _get_dispatch(db, dispatch_id)
    status = transition(
        "dispatch", DISPATCH_TRANSITIONS, dispatch.status, DispatchStatus.DELIVERED
    )

    reported = {r.item_id: r for r in (data.items if data and data.items else [])}
    known = {item.id for item in dispatch.items}
    unknown = set(reported) - known
    if unknown:
        raise InvalidArgumentError(
            f"Items not on this dispatch: {', '.join(sorted(str(u) for u in unknown))}"
        )

    outcome: list[tuple[DispatchItem, int, int, int]] = []
    for item in dispatch.items:
        report = reported.get(item.id)
        if report is None:
            outcome.append((item, item.quantity, 0, 0))
            continue
        counts = (
            report.received_quantity,
            report.damaged_quantity,
            report.missing_quantity,
        )
        if sum(counts) != item.quantity:
            raise InvalidArgumentError(
                f"Received, damaged and missing units of batch "
                f"{item.batch.batch_number} must add up to {item.quantity}"
            )
        outcome.append((item, *counts))

    received_total = 0
    for item, received, damaged, missing in outcome:
        item.received_quantity = received
        item.damaged_quantity = damaged
        item.missing_quantity = missing
        if received:
            target = _destination_batch(db, item.batch, dispatch.destination_store_id)
            target.quantity += received
        received_total += received

    dispatch.status = status
    dispatch.delivered_at = datetime.now(timezone.utc)

    log_action(
        db,
        user_id=user_id,
        action="DISPATCH_DELIVERED",
        resource_type="dispatches",
        resource_id=dispatch.dispatch_number,
        ip_address=ip_address,
        changes={
            "status": DispatchStatus.DELIVERED.value,
            "received": received_total,
            "dispatched": sum(i.quantity for i in dispatch.items),
        },
    )

    records.commit(db, "mark dispatch delivered")
    db.refresh(dispatch)
    logger.info(
        "Dispatch %s delivered, %d unit(s) received",
        dispatch.dispatch_number,
        received_total,
    )
    return dispatch_to_out(dispatch)


def cancel_dispatch(
    db: Session,
    dispatch_id: UUID,
    user_id: UUID,
    ip_address: str | None = None,
) -> DispatchOut:
    dispatch = _get_dispatch(db, dispatch_id)
    dispatch.status = transition(
        "dispatch", DISPATCH_TRANSITIONS, dispatch.status, DispatchStatus.CANCELLED
    )

    log_action(
        db,
        user_id=user_id,
        action="DISPATCH_CANCELLED",
        resource_type="dispatches",
        resource_id=dispatch.dispatch_number,
        ip_address=ip_address,
        changes={"status": DispatchStatus.CANCELLED.value},
    )

    records.commit(db, "cancel dispatch")
    db.refresh(dispatch)
    return dispatch_to_out(dispatch)


# ─── Read ────────────────────────────────────────────────────────────────────


def list_dispatches(
    db: Session,
    status: DispatchStatus | None = None,
    source_store_id: UUID | None = None,
    destination_store_id: UUID | None = None,
) -> list[DispatchOut]:
    query = db.query(Dispatch)
    if status is not None:
        query = query.filter(Dispatch.status == status)
    if source_store_id is not None:
        query = query.filter(Dispatch.source_store_id == source_store_id)
    if destination_store_id is not None:
        query = query.filter(Dispatch.destination_store_id == destination_store_id)
    rows = query.order_by(Dispatch.created_at.desc()).limit(100).all()
    return [dispatch_to_out(d) for d in rows]


def get_dispatch(db: Session, dispatch_id: UUID) -> DispatchOut:
    return dispatch_to_out(_get_dispatch(db, dispatch_id))


def dispatch_statistics(db: Session, store_id: UUID | None = None) -> DispatchStatistics:
    query = db.query(Dispatch)
    if store_id is not None:
        query = query.filter(
            or_(
                Dispatch.source_store_id == store_id,
                Dispatch.destination_store_id == store_id,
            )
        )
    rows = query.all()

    counts = Counter(d.status.value for d in rows)
    in_transit = [d for d in rows if d.status == DispatchStatus.IN_TRANSIT]
    return DispatchStatistics(
        total=len(rows),
        by_status={s.value: counts.get(s.value, 0) for s in DispatchStatus},
        items_in_transit=sum(i.quantity for d in in_transit for i in d.items),
        value_in_transit=sum(
            (Decimal(str(i.unit_price)) * i.quantity for d in in_transit for i in d.items),
            Decimal("0"),
        ),
    )


# ─── Serialisation ───────────────────────────────────────────────────────────


def dispatch_to_out(dispatch: Dispatch) -> DispatchOut:
    items_out: list[DispatchItemOut] = []
    for item in dispatch.items:
        unit_cost = Decimal(str(item.unit_cost))
        unit_price = Decimal(str(item.unit_price))
        items_out.append(
            DispatchItemOut(
                id=item.id,
                batch_id=item.batch_id,
                batch_number=item.batch.batch_number,
                product_id=item.batch.product_id,
                product_name=item.batch.product.name,
                quantity=item.quantity,
                received_quantity=item.received_quantity,
                damaged_quantity=item.damaged_quantity,
                missing_quantity=item.missing_quantity,
                unit_cost=unit_cost,
                unit_price=unit_price,
                total_cost=unit_cost * item.quantity,
                total_value=unit_price * item.quantity,
            )
        )

    return DispatchOut(
        id=dispatch.id,
        dispatch_number=dispatch.dispatch_number,
        status=dispatch.status,
        source_store_id=dispatch.source_store_id,
        source_store_name=dispatch.source_store.name,
        destination_store_id=dispatch.destination_store_id,
        destination_store_name=dispatch.destination_store.name,
        expected_delivery_date=dispatch.expected_delivery_date,
        carrier_name=dispatch.carrier_name,
        tracking_number=dispatch.tracking_number,
        notes=dispatch.notes,
        created_by=dispatch.created_by,
        approved_by=dispatch.approved_by,
        approved_at=dispatch.approved_at,
        dispatched_at=dispatch.dispatched_at,
        delivered_at=dispatch.delivered_at,
        items=items_out,
        total_items=sum(i.quantity for i in items_out),
        total_cost=sum((i.total_cost for i in items_out), Decimal("0")),
        total_value=sum((i.total_value for i in items_out), Decimal("0")),
        created_at=dispatch.created_at.isoformat(),
    )
