from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.app.core.errors import InvalidArgumentError, NotFoundError
from backend.app.models.dispatch import (
    DispatchStatus,
    RebalancingPriority,
    RebalancingRequest,
    RebalancingStatus,
)
from backend.app.models.inventory import Batch
from backend.app.schemas.rebalancing import (
    RebalancingCreate,
    RebalancingOut,
    RebalancingReject,
    RebalancingStatistics,
)
from backend.app.services import records
from backend.app.services.audit import log_action
from backend.app.services.dispatch import open_dispatch, stage_batch_units
from backend.app.services.inventory import store_stock
from backend.app.services.lifecycle import (
    DISPATCH_TRANSITIONS,
    REBALANCING_TRANSITIONS,
    can_transition,
    transition,
)

logger = logging.getLogger(__name__)


def _get_request(db: Session, request_id: UUID) -> RebalancingRequest:
    req = db.query(RebalancingRequest).filter(RebalancingRequest.id == request_id).first()
    if req is None:
        raise NotFoundError("Rebalancing request not found")
    return req


def _ensure_stock(db: Session, product_id: UUID, store_id: UUID, quantity: int) -> None:
    available = store_stock(db, product_id, store_id)
    if available < quantity:
        raise InvalidArgumentError(
            f"Insufficient stock at source store: {available} available, "
            f"{quantity} requested"
        )


# ─── Create ──────────────────────────────────────────────────────────────────


def create_request(
    db: Session,
    data: RebalancingCreate,
    user_id: UUID,
    ip_address: str | None = None,
) -> RebalancingOut:
    if data.source_store_id == data.destination_store_id:
        raise InvalidArgumentError("Source and destination stores must be different")
    product = records.get_product(db, data.product_id)
    records.get_store(db, data.source_store_id, label="Source store")
    records.get_store(db, data.destination_store_id, label="Destination store")
    _ensure_stock(db, product.id, data.source_store_id, data.quantity)

    req = RebalancingRequest(
        product_id=product.id,
        source_store_id=data.source_store_id,
        destination_store_id=data.destination_store_id,
        quantity=data.quantity,
        reason=data.reason,
        priority=data.priority,
        status=RebalancingStatus.PENDING,
        requested_by=user_id,
    )
    db.add(req)
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="REBALANCING_REQUESTED",
        resource_type="rebalancing_requests",
        resource_id=str(req.id),
        ip_address=ip_address,
        changes={
            "product": product.name,
            "quantity": data.quantity,
            "priority": data.priority.value,
        },
    )

    records.commit(db, "create rebalancing request")
    db.refresh(req)
    return _request_to_out(req)


# ─── Lifecycle ───────────────────────────────────────────────────────────────


def approve_request(
    db: Session,
    request_id: UUID,
    user_id: UUID,
    ip_address: str | None = None,
) -> RebalancingOut:
    """Approve and open a pending dispatch carrying the requested units.

    The dispatch draws on the source store's batches of the product, oldest
    first.
    """
    req = _get_request(db, request_id)
    status = transition(
        "rebalancing request",
        REBALANCING_TRANSITIONS,
        req.status,
        RebalancingStatus.APPROVED,
    )
    _ensure_stock(db, req.product_id, req.source_store_id, req.quantity)

    dispatch = open_dispatch(
        db,
        req.source_store_id,
        req.destination_store_id,
        created_by=user_id,
        notes=f"Rebalancing request {req.id}",
    )
    batches = (
        db.query(Batch)
        .filter(
            Batch.product_id == req.product_id,
            Batch.store_id == req.source_store_id,
            Batch.is_active.is_(True),
            Batch.quantity > 0,
        )
        .order_by(Batch.created_at, Batch.batch_number)
        .all()
    )
    remaining = req.quantity
    for batch in batches:
        if remaining == 0:
            break
        take = min(batch.quantity, remaining)
        stage_batch_units(dispatch, batch, take)
        remaining -= take

    req.status = status
    req.approved_by = user_id
    req.approved_at = datetime.now(timezone.utc)
    req.dispatch_id = dispatch.id

    log_action(
        db,
        user_id=user_id,
        action="REBALANCING_APPROVED",
        resource_type="rebalancing_requests",
        resource_id=str(req.id),
        ip_address=ip_address,
        changes={"dispatch": dispatch.dispatch_number},
    )

    records.commit(db, "approve rebalancing request")
    db.refresh(req)
    logger.info(
        "Rebalancing request %s approved as dispatch %s", req.id, dispatch.dispatch_number
    )
    return _request_to_out(req)


def reject_request(
    db: Session,
    request_id: UUID,
    data: RebalancingReject,
    user_id: UUID,
    ip_address: str | None = None,
) -> RebalancingOut:
    req = _get_request(db, request_id)
    req.status = transition(
        "rebalancing request",
        REBALANCING_TRANSITIONS,
        req.status,
        RebalancingStatus.REJECTED,
    )
    req.rejection_reason = data.rejection_reason

    log_action(
        db,
        user_id=user_id,
        action="REBALANCING_REJECTED",
        resource_type="rebalancing_requests",
        resource_id=str(req.id),
        ip_address=ip_address,
        changes={"rejection_reason": data.rejection_reason},
    )

    records.commit(db, "reject rebalancing request")
    db.refresh(req)
    return _request_to_out(req)


def cancel_request(
    db: Session,
    request_id: UUID,
    user_id: UUID,
    ip_address: str | None = None,
) -> RebalancingOut:
    """Cancel the request together with its dispatch, if that has not left yet."""
    req = _get_request(db, request_id)
    status = transition(
        "rebalancing request",
        REBALANCING_TRANSITIONS,
        req.status,
        RebalancingStatus.CANCELLED,
    )

    dispatch = req.dispatch
    if dispatch is not None and dispatch.status != DispatchStatus.CANCELLED:
        if not can_transition(
            DISPATCH_TRANSITIONS, dispatch.status, DispatchStatus.CANCELLED
        ):
            raise InvalidArgumentError(
                f"Dispatch {dispatch.dispatch_number} is already "
                f"{dispatch.status.value} and cannot be cancelled"
            )
        dispatch.status = DispatchStatus.CANCELLED

    req.status = status

    log_action(
        db,
        user_id=user_id,
        action="REBALANCING_CANCELLED",
        resource_type="rebalancing_requests",
        resource_id=str(req.id),
        ip_address=ip_address,
        changes={
            "dispatch": dispatch.dispatch_number if dispatch is not None else None
        },
    )

    records.commit(db, "cancel rebalancing request")
    db.refresh(req)
    return _request_to_out(req)


def complete_request(
    db: Session,
    request_id: UUID,
    user_id: UUID,
    ip_address: str | None = None,
) -> RebalancingOut:
    req = _get_request(db, request_id)
    status = transition(
        "rebalancing request",
        REBALANCING_TRANSITIONS,
        req.status,
        RebalancingStatus.COMPLETED,
    )
    if req.dispatch is None or req.dispatch.status != DispatchStatus.DELIVERED:
        raise InvalidArgumentError(
            "Rebalancing can only be completed once its dispatch is delivered"
        )

    req.status = status
    req.completed_at = datetime.now(timezone.utc)

    log_action(
        db,
        user_id=user_id,
        action="REBALANCING_COMPLETED",
        resource_type="rebalancing_requests",
        resource_id=str(req.id),
        ip_address=ip_address,
        changes={"status": RebalancingStatus.COMPLETED.value},
    )

    records.commit(db, "complete rebalancing request")
    db.refresh(req)
    return _request_to_out(req)


# ─── Read ────────────────────────────────────────────────────────────────────


def list_requests(
    db: Session,
    status: RebalancingStatus | None = None,
    store_id: UUID | None = None,
    product_id: UUID | None = None,
) -> list[RebalancingOut]:
    query = db.query(RebalancingRequest)
    if status is not None:
        query = query.filter(RebalancingRequest.status == status)
    if store_id is not None:
        query = query.filter(
            or_(
                RebalancingRequest.source_store_id == store_id,
                RebalancingRequest.destination_store_id == store_id,
            )
        )
    if product_id is not None:
        query = query.filter(RebalancingRequest.product_id == product_id)
    rows = query.order_by(RebalancingRequest.created_at.desc()).limit(100).all()
    return [_request_to_out(r) for r in rows]


def get_request(db: Session, request_id: UUID) -> RebalancingOut:
    return _request_to_out(_get_request(db, request_id))


def rebalancing_statistics(db: Session) -> RebalancingStatistics:
    rows = db.query(RebalancingRequest).all()
    statuses = Counter(r.status.value for r in rows)
    priorities = Counter(r.priority.value for r in rows)
    return RebalancingStatistics(
        total=len(rows),
        by_status={s.value: statuses.get(s.value, 0) for s in RebalancingStatus},
        by_priority={p.value: priorities.get(p.value, 0) for p in RebalancingPriority},
    )


def _request_to_out(req: RebalancingRequest) -> RebalancingOut:
    return RebalancingOut(
        id=req.id,
        product_id=req.product_id,
        product_name=req.product.name,
        source_store_id=req.source_store_id,
        destination_store_id=req.destination_store_id,
        quantity=req.quantity,
        reason=req.reason,
        priority=req.priority,
        status=req.status,
        rejection_reason=req.rejection_reason,
        requested_by=req.requested_by,
        approved_by=req.approved_by,
        approved_at=req.approved_at,
        completed_at=req.completed_at,
        dispatch_id=req.dispatch_id,
        dispatch_number=req.dispatch.dispatch_number if req.dispatch else None,
        created_at=req.created_at.isoformat(),
    )
