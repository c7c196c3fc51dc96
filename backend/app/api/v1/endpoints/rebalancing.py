from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from backend.app.api.permission_deps import require_permission
from backend.app.core.database import get_db
from backend.app.core.errors import ServiceError
from backend.app.models.dispatch import RebalancingStatus
from backend.app.models.employee import Employee
from backend.app.schemas.rebalancing import (
    RebalancingCreate,
    RebalancingOut,
    RebalancingReject,
    RebalancingStatistics,
)
from backend.app.services import rebalancing as rebalancing_service

router = APIRouter()


@router.get("", response_model=list[RebalancingOut])
def get_requests(
    request_status: RebalancingStatus | None = Query(None, alias="status"),
    store_id: UUID | None = Query(None),
    product_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("rebalancing:read")),
) -> list[RebalancingOut]:
    return rebalancing_service.list_requests(
        db, status=request_status, store_id=store_id, product_id=product_id
    )


@router.get("/statistics", response_model=RebalancingStatistics)
def get_statistics(
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("rebalancing:read")),
) -> RebalancingStatistics:
    return rebalancing_service.rebalancing_statistics(db)


@router.get("/{request_id}", response_model=RebalancingOut)
def get_single_request(
    request_id: UUID,
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("rebalancing:read")),
) -> RebalancingOut:
    try:
        return rebalancing_service.get_request(db, request_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("", response_model=RebalancingOut, status_code=status.HTTP_201_CREATED)
def create_new_request(
    payload: RebalancingCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("rebalancing:write")),
) -> RebalancingOut:
    try:
        return rebalancing_service.create_request(
            db=db,
            data=payload,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{request_id}/approve", response_model=RebalancingOut)
def approve_existing_request(
    request_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("rebalancing:approve")),
) -> RebalancingOut:
    try:
        return rebalancing_service.approve_request(
            db=db,
            request_id=request_id,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{request_id}/reject", response_model=RebalancingOut)
def reject_existing_request(
    request_id: UUID,
    payload: RebalancingReject,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("rebalancing:approve")),
) -> RebalancingOut:
    try:
        return rebalancing_service.reject_request(
            db=db,
            request_id=request_id,
            data=payload,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{request_id}/cancel", response_model=RebalancingOut)
def cancel_existing_request(
    request_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("rebalancing:write")),
) -> RebalancingOut:
    try:
        return rebalancing_service.cancel_request(
            db=db,
            request_id=request_id,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{request_id}/complete", response_model=RebalancingOut)
def complete_existing_request(
    request_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("rebalancing:approve")),
) -> RebalancingOut:
    try:
        return rebalancing_service.complete_request(
            db=db,
            request_id=request_id,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
