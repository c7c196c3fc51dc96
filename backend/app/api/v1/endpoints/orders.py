from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from backend.app.api.permission_deps import require_permission
from backend.app.core.database import get_db
from backend.app.core.errors import ServiceError
from backend.app.models.employee import Employee
from backend.app.models.order import OrderStatus
from backend.app.schemas.orders import (
    ExchangeOut,
    ExchangeRequest,
    OrderCreate,
    OrderOut,
    PaymentCreate,
)
from backend.app.services.exchange import apply_exchange
from backend.app.services.orders import (
    cancel_order,
    create_order,
    get_order,
    list_orders,
    record_payment,
)

router = APIRouter()


# ─── Orders ───────────────────────────────────────────────────────────────────


@router.get("", response_model=list[OrderOut])
def get_orders(
    store_id: UUID | None = Query(None),
    order_status: OrderStatus | None = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("order:read")),
) -> list[OrderOut]:
    return list_orders(db, store_id=store_id, status=order_status, limit=limit)


@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
def create_new_order(
    payload: OrderCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("order:write")),
) -> OrderOut:
    try:
        return create_order(
            db=db,
            data=payload,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


# ─── Exchange ─────────────────────────────────────────────────────────────────


@router.post("/exchange", response_model=ExchangeOut)
def exchange_order_items(
    payload: ExchangeRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("order:exchange")),
) -> ExchangeOut:
    """Return items from an order and add replacements, recalculating totals."""
    try:
        result = apply_exchange(
            db,
            payload.order_id,
            [r.model_dump() for r in payload.removed_products],
            [r.model_dump() for r in payload.replacement_products],
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return ExchangeOut(**result)


# ─── Single order ─────────────────────────────────────────────────────────────


@router.get("/{order_id}", response_model=OrderOut)
def get_single_order(
    order_id: str,
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("order:read")),
) -> OrderOut:
    """*order_id* is the order's UUID or its order number."""
    try:
        return get_order(db, order_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{order_id}/payments", response_model=OrderOut)
def add_payment(
    order_id: str,
    payload: PaymentCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("order:write")),
) -> OrderOut:
    try:
        return record_payment(
            db=db,
            order_id=order_id,
            data=payload,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_existing_order(
    order_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("order:write")),
) -> OrderOut:
    try:
        return cancel_order(
            db=db,
            order_id=order_id,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
