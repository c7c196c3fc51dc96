from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from backend.app.api.permission_deps import require_permission
from backend.app.core.database import get_db
from backend.app.core.errors import ServiceError
from backend.app.models.dispatch import DispatchStatus
from backend.app.models.employee import Employee
from backend.app.schemas.dispatch import (
    DeliveryConfirm,
    DispatchCreate,
    DispatchItemAdd,
    DispatchOut,
    DispatchStatistics,
)
from backend.app.services import dispatch as dispatch_service

router = APIRouter()


# ─── Read ─────────────────────────────────────────────────────────────────────


@router.get("", response_model=list[DispatchOut])
def get_dispatches(
    dispatch_status: DispatchStatus | None = Query(None, alias="status"),
    source_store_id: UUID | None = Query(None),
    destination_store_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("dispatch:read")),
) -> list[DispatchOut]:
    return dispatch_service.list_dispatches(
        db,
        status=dispatch_status,
        source_store_id=source_store_id,
        destination_store_id=destination_store_id,
    )


@router.get("/statistics", response_model=DispatchStatistics)
def get_dispatch_statistics(
    store_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("dispatch:read")),
) -> DispatchStatistics:
    return dispatch_service.dispatch_statistics(db, store_id=store_id)


@router.get("/{dispatch_id}", response_model=DispatchOut)
def get_single_dispatch(
    dispatch_id: UUID,
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("dispatch:read")),
) -> DispatchOut:
    try:
        return dispatch_service.get_dispatch(db, dispatch_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


# ─── Assemble ─────────────────────────────────────────────────────────────────


@router.post("", response_model=DispatchOut, status_code=status.HTTP_201_CREATED)
def create_new_dispatch(
    payload: DispatchCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("dispatch:write")),
) -> DispatchOut:
    try:
        return dispatch_service.create_dispatch(
            db=db,
            data=payload,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{dispatch_id}/items", response_model=DispatchOut)
def add_dispatch_item(
    dispatch_id: UUID,
    payload: DispatchItemAdd,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("dispatch:write")),
) -> DispatchOut:
    try:
        return dispatch_service.add_item(
            db=db,
            dispatch_id=dispatch_id,
            data=payload,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/{dispatch_id}/items/{item_id}", response_model=DispatchOut)
def remove_dispatch_item(
    dispatch_id: UUID,
    item_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("dispatch:write")),
) -> DispatchOut:
    try:
        return dispatch_service.remove_item(
            db=db,
            dispatch_id=dispatch_id,
            item_id=item_id,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


# ─── Lifecycle ────────────────────────────────────────────────────────────────


@router.post("/{dispatch_id}/approve", response_model=DispatchOut)
def approve_existing_dispatch(
    dispatch_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("dispatch:approve")),
) -> DispatchOut:
    try:
        return dispatch_service.approve_dispatch(
            db=db,
            dispatch_id=dispatch_id,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{dispatch_id}/dispatch", response_model=DispatchOut)
def ship_dispatch(
    dispatch_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("dispatch:write")),
) -> DispatchOut:
    try:
        return dispatch_service.mark_dispatched(
            db=db,
            dispatch_id=dispatch_id,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{dispatch_id}/deliver", response_model=DispatchOut)
def deliver_dispatch(
    dispatch_id: UUID,
    request: Request,
    payload: DeliveryConfirm | None = None,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("dispatch:write")),
) -> DispatchOut:
    try:
        return dispatch_service.mark_delivered(
            db=db,
            dispatch_id=dispatch_id,
            data=payload,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{dispatch_id}/cancel", response_model=DispatchOut)
def cancel_existing_dispatch(
    dispatch_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("dispatch:write")),
) -> DispatchOut:
    try:
        return dispatch_service.cancel_dispatch(
            db=db,
            dispatch_id=dispatch_id,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
