from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from backend.app.api.permission_deps import require_permission
from backend.app.core.database import get_db
from backend.app.core.errors import ServiceError
from backend.app.models.employee import Employee
from backend.app.models.inventory import InventoryItemStatus
from backend.app.schemas.inventory import (
    BatchCreate,
    BatchOut,
    InventoryItemOut,
    MarkSoldRequest,
    ProductCreate,
    ProductOut,
    StockAdjustment,
)
from backend.app.services import inventory as inventory_service

router = APIRouter()


# ─── Products ─────────────────────────────────────────────────────────────────


@router.get("/products", response_model=list[ProductOut])
def get_products(
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("inventory:read")),
) -> list[ProductOut]:
    return inventory_service.list_products(db)


@router.post("/products", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_new_product(
    payload: ProductCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("inventory:write")),
) -> ProductOut:
    try:
        return inventory_service.create_product(
            db=db,
            data=payload,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


# ─── Batches ──────────────────────────────────────────────────────────────────


@router.get("/batches", response_model=list[BatchOut])
def get_batches(
    product_id: UUID | None = Query(None),
    store_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("inventory:read")),
) -> list[BatchOut]:
    return inventory_service.list_batches(db, product_id=product_id, store_id=store_id)


@router.post("/batches", response_model=BatchOut, status_code=status.HTTP_201_CREATED)
def create_new_batch(
    payload: BatchCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("inventory:write")),
) -> BatchOut:
    try:
        return inventory_service.create_batch(
            db=db,
            data=payload,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/batches/{batch_id}", response_model=BatchOut)
def get_single_batch(
    batch_id: UUID,
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("inventory:read")),
) -> BatchOut:
    try:
        return inventory_service.get_batch(db, batch_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/batches/{batch_id}/adjust", response_model=BatchOut)
def adjust_stock(
    batch_id: UUID,
    payload: StockAdjustment,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("inventory:write")),
) -> BatchOut:
    try:
        return inventory_service.adjust_batch_stock(
            db=db,
            batch_id=batch_id,
            data=payload,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/batches/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_existing_batch(
    batch_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("inventory:write")),
) -> None:
    try:
        inventory_service.delete_batch(
            db=db,
            batch_id=batch_id,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/batches/{batch_id}/items", response_model=list[InventoryItemOut])
def get_batch_items(
    batch_id: UUID,
    item_status: InventoryItemStatus | None = Query(None, alias="status"),
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("inventory:read")),
) -> list[InventoryItemOut]:
    return inventory_service.list_items(db, batch_id=batch_id, status=item_status)


# ─── Barcoded items ───────────────────────────────────────────────────────────


@router.get("/items/{barcode}", response_model=InventoryItemOut)
def lookup_item(
    barcode: str,
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("inventory:read")),
) -> InventoryItemOut:
    try:
        return inventory_service.get_item(db, barcode)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/items/{barcode}/sell", response_model=InventoryItemOut)
def sell_item(
    barcode: str,
    payload: MarkSoldRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(require_permission("order:write")),
) -> InventoryItemOut:
    try:
        return inventory_service.mark_item_sold(
            db=db,
            barcode=barcode,
            order_id=payload.order_id,
            user_id=current_employee.id,
            ip_address=request.client.host if request.client else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
