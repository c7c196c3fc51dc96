from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from backend.app.api.permission_deps import require_permission
from backend.app.core.database import get_db
from backend.app.core.errors import ServiceError
from backend.app.models.employee import Employee
from backend.app.schemas.employees import EmployeeCreate, EmployeeOut, EmployeeUpdate
from backend.app.services.employees import (
    create_employee,
    get_employee,
    list_employees,
    update_employee,
)

router = APIRouter()


@router.get("", response_model=list[EmployeeOut])
def get_employees(
    store_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("employee:manage")),
) -> list[EmployeeOut]:
    return list_employees(db, store_id=store_id)


@router.post("", response_model=EmployeeOut, status_code=status.HTTP_201_CREATED)
def create_new_employee(
    payload: EmployeeCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("employee:manage")),
) -> EmployeeOut:
    """Create an employee account. Admin only."""
    try:
        return create_employee(
            db=db,
            data=payload,
            admin_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/{employee_id}", response_model=EmployeeOut)
def get_single_employee(
    employee_id: UUID,
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("employee:manage")),
) -> EmployeeOut:
    try:
        return get_employee(db, employee_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.patch("/{employee_id}", response_model=EmployeeOut)
def update_existing_employee(
    employee_id: UUID,
    payload: EmployeeUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("employee:manage")),
) -> EmployeeOut:
    """Change role, store or active flag. Admin only."""
    try:
        return update_employee(
            db=db,
            employee_id=employee_id,
            data=payload,
            admin_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
