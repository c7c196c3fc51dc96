from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from backend.app.api.permission_deps import require_permission
from backend.app.core.database import get_db
from backend.app.core.errors import ServiceError
from backend.app.models.employee import Employee
from backend.app.models.inventory import DefectStatus
from backend.app.schemas.defects import DefectOut, DefectReport, DefectUpdate
from backend.app.services.defects import (
    get_defect,
    list_defects,
    remove_defect,
    report_defect,
    update_defect,
)

router = APIRouter()


@router.get("", response_model=list[DefectOut])
def get_defects(
    store_id: UUID | None = Query(None),
    defect_status: DefectStatus | None = Query(None, alias="status"),
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("defect:read")),
) -> list[DefectOut]:
    return list_defects(db, store_id=store_id, status=defect_status)


@router.post("", response_model=DefectOut, status_code=status.HTTP_201_CREATED)
def report_new_defect(
    payload: DefectReport,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("defect:write")),
) -> DefectOut:
    """Mark a scanned unit defective. Unrecognised fields land in ``details``."""
    try:
        return report_defect(
            db,
            barcode=payload.barcode,
            reason=payload.reason,
            store_id=payload.store_id,
            order_id=payload.order_id,
            customer_phone=payload.customer_phone,
            return_reason=payload.return_reason,
            notes=payload.notes,
            details=dict(payload.model_extra or {}),
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/{defect_id}", response_model=DefectOut)
def get_single_defect(
    defect_id: UUID,
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("defect:read")),
) -> DefectOut:
    try:
        return get_defect(db, defect_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.patch("/{defect_id}", response_model=DefectOut)
def update_existing_defect(
    defect_id: UUID,
    payload: DefectUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("defect:write")),
) -> DefectOut:
    try:
        return update_defect(
            db,
            defect_id,
            payload,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/{defect_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_defect(
    defect_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("defect:write")),
) -> None:
    try:
        remove_defect(
            db,
            defect_id,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
