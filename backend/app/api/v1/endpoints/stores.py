from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from backend.app.api.permission_deps import require_permission
from backend.app.core.database import get_db
from backend.app.core.errors import ServiceError
from backend.app.models.employee import Employee
from backend.app.models.store import StoreType
from backend.app.schemas.stores import StoreCreate, StoreOut, StoreUpdate
from backend.app.services.stores import create_store, get_store, list_stores, update_store

router = APIRouter()


@router.get("", response_model=list[StoreOut])
def get_stores(
    store_type: StoreType | None = Query(None),
    active_only: bool = Query(False),
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("store:read")),
) -> list[StoreOut]:
    return list_stores(db, store_type=store_type, active_only=active_only)


@router.post("", response_model=StoreOut, status_code=status.HTTP_201_CREATED)
def create_new_store(
    payload: StoreCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("store:manage")),
) -> StoreOut:
    try:
        return create_store(
            db=db,
            data=payload,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/{store_id}", response_model=StoreOut)
def get_single_store(
    store_id: UUID,
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("store:read")),
) -> StoreOut:
    try:
        return get_store(db, store_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.patch("/{store_id}", response_model=StoreOut)
def update_existing_store(
    store_id: UUID,
    payload: StoreUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("store:manage")),
) -> StoreOut:
    try:
        return update_store(
            db=db,
            store_id=store_id,
            data=payload,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
