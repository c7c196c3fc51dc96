from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func as sa_func
from sqlalchemy.orm import Session

from backend.app.core.errors import InvalidArgumentError
from backend.app.models.dispatch import DispatchItem
from backend.app.models.inventory import Batch, InventoryItem, InventoryItemStatus, Product
from backend.app.schemas.inventory import (
    BatchCreate,
    BatchOut,
    InventoryItemOut,
    ProductCreate,
    ProductOut,
    StockAdjustment,
)
from backend.app.services import records
from backend.app.services.audit import log_action
from backend.app.services.lifecycle import INVENTORY_ITEM_TRANSITIONS, transition

logger = logging.getLogger(__name__)


# ─── Products ─────────────────────────────────────────────────────────────────


def create_product(
    db: Session,
    data: ProductCreate,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> ProductOut:
    if db.query(Product).filter(Product.sku == data.sku).first():
        raise InvalidArgumentError(f"SKU '{data.sku}' already exists")

    product = Product(
        name=data.name,
        sku=data.sku,
        category=data.category,
        description=data.description,
    )
    db.add(product)
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="PRODUCT_CREATED",
        resource_type="products",
        resource_id=str(product.id),
        ip_address=ip_address,
        changes={"name": data.name, "sku": data.sku},
    )

    records.commit(db, "create product")
    db.refresh(product)
    return ProductOut.model_validate(product)


def list_products(db: Session) -> list[ProductOut]:
    rows = db.query(Product).order_by(Product.name).all()
    return [ProductOut.model_validate(p) for p in rows]


# ─── Batches ──────────────────────────────────────────────────────────────────


def generate_batch_number(sequence: int, day: datetime) -> str:
    return f"BATCH-{day:%Y%m%d}-{sequence:04d}"


def create_batch(
    db: Session,
    data: BatchCreate,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> BatchOut:
    """Receive a new lot; optionally issue one barcoded item per unit."""
    product = records.get_product(db, data.product_id)
    store = records.get_store(db, data.store_id)

    now = datetime.now(timezone.utc)
    prefix = f"BATCH-{now:%Y%m%d}-"
    count = (
        db.query(sa_func.count(sa_func.distinct(Batch.batch_number)))
        .filter(Batch.batch_number.like(f"{prefix}%"))
        .scalar()
    ) or 0
    batch_number = generate_batch_number(count + 1, now)

    batch = Batch(
        batch_number=batch_number,
        product_id=product.id,
        store_id=store.id,
        quantity=data.quantity,
        cost_price=data.cost_price,
        sell_price=data.sell_price,
        manufactured_date=data.manufactured_date,
        expiry_date=data.expiry_date,
        notes=data.notes,
    )
    db.add(batch)
    db.flush()

    if data.generate_barcodes:
        for unit in range(1, data.quantity + 1):
            db.add(
                InventoryItem(
                    barcode=f"{batch_number}-{unit:04d}",
                    batch_id=batch.id,
                    product_id=product.id,
                    store_id=store.id,
                    status=InventoryItemStatus.IN_STOCK,
                    cost_price=data.cost_price,
                    selling_price=data.sell_price,
                )
            )

    log_action(
        db,
        user_id=user_id,
        action="BATCH_CREATED",
        resource_type="batches",
        resource_id=batch_number,
        ip_address=ip_address,
        changes={
            "product": product.name,
            "store": store.name,
            "quantity": data.quantity,
            "barcodes_generated": data.generate_barcodes,
        },
    )

    records.commit(db, "create batch")
    db.refresh(batch)
    return batch_to_out(db, batch)


def list_batches(
    db: Session,
    product_id: UUID | None = None,
    store_id: UUID | None = None,
) -> list[BatchOut]:
    query = db.query(Batch).filter(Batch.is_active.is_(True))
    if product_id is not None:
        query = query.filter(Batch.product_id == product_id)
    if store_id is not None:
        query = query.filter(Batch.store_id == store_id)
    rows = query.order_by(Batch.created_at.desc()).limit(200).all()
    return [batch_to_out(db, b) for b in rows]


def get_batch(db: Session, batch_id: UUID) -> BatchOut:
    return batch_to_out(db, records.get_batch(db, batch_id))


def adjust_batch_stock(
    db: Session,
    batch_id: UUID,
    data: StockAdjustment,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> BatchOut:
    batch = records.get_batch(db, batch_id)
    new_quantity = batch.quantity + data.adjustment
    if new_quantity < 0:
        raise InvalidArgumentError(
            f"Cannot remove {-data.adjustment} units: only {batch.quantity} in batch"
        )

    previous = batch.quantity
    batch.quantity = new_quantity

    log_action(
        db,
        user_id=user_id,
        action="BATCH_STOCK_ADJUSTED",
        resource_type="batches",
        resource_id=batch.batch_number,
        ip_address=ip_address,
        changes={
            "from": previous,
            "to": new_quantity,
            "reason": data.reason,
        },
    )

    records.commit(db, "adjust batch stock")
    db.refresh(batch)
    return batch_to_out(db, batch)


def delete_batch(
    db: Session,
    batch_id: UUID,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> None:
    """Delete a batch whose units are all still in stock and never dispatched."""
    batch = records.get_batch(db, batch_id)

    if any(item.status != InventoryItemStatus.IN_STOCK for item in batch.items):
        raise InvalidArgumentError(
            "Cannot delete a batch with sold or defective items"
        )
    if db.query(DispatchItem).filter(DispatchItem.batch_id == batch.id).first():
        raise InvalidArgumentError("Cannot delete a batch that is part of a dispatch")

    for item in list(batch.items):
        db.delete(item)
    db.delete(batch)

    log_action(
        db,
        user_id=user_id,
        action="BATCH_DELETED",
        resource_type="batches",
        resource_id=batch.batch_number,
        ip_address=ip_address,
        changes={"quantity": batch.quantity},
    )

    records.commit(db, "delete batch")


def store_stock(db: Session, product_id: UUID, store_id: UUID) -> int:
    """Units of *product_id* held in active batches at *store_id*."""
    total = (
        db.query(sa_func.coalesce(sa_func.sum(Batch.quantity), 0))
        .filter(
            Batch.product_id == product_id,
            Batch.store_id == store_id,
            Batch.is_active.is_(True),
        )
        .scalar()
    )
    return int(total or 0)


def batch_to_out(db: Session, batch: Batch) -> BatchOut:
    return BatchOut(
        id=batch.id,
        batch_number=batch.batch_number,
        product_id=batch.product_id,
        product_name=batch.product.name,
        store_id=batch.store_id,
        store_name=batch.store.name,
        quantity=batch.quantity,
        cost_price=batch.cost_price,
        sell_price=batch.sell_price,
        total_value=batch.cost_price * batch.quantity,
        sell_value=batch.sell_price * batch.quantity,
        is_active=batch.is_active,
        manufactured_date=batch.manufactured_date,
        expiry_date=batch.expiry_date,
        barcodes=[item.barcode for item in batch.items],
        created_at=batch.created_at.isoformat(),
    )


# ─── Inventory items ─────────────────────────────────────────────────────────


def get_item(db: Session, barcode: str) -> InventoryItemOut:
    return InventoryItemOut.model_validate(records.get_inventory_item(db, barcode))


def list_items(
    db: Session,
    batch_id: UUID | None = None,
    status: InventoryItemStatus | None = None,
) -> list[InventoryItemOut]:
    query = db.query(InventoryItem)
    if batch_id is not None:
        query = query.filter(InventoryItem.batch_id == batch_id)
    if status is not None:
        query = query.filter(InventoryItem.status == status)
    rows = query.order_by(InventoryItem.barcode).limit(500).all()
    return [InventoryItemOut.model_validate(i) for i in rows]


def mark_item_sold(
    db: Session,
    barcode: str,
    order_id: UUID | None = None,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> InventoryItemOut:
    item = records.get_inventory_item(db, barcode)
    if order_id is not None:
        records.get_order(db, order_id)

    item.status = transition(
        "inventory item",
        INVENTORY_ITEM_TRANSITIONS,
        item.status,
        InventoryItemStatus.SOLD,
    )
    item.order_id = order_id
    records.replace_inventory_item(db, item)

    log_action(
        db,
        user_id=user_id,
        action="ITEM_SOLD",
        resource_type="inventory_items",
        resource_id=barcode,
        ip_address=ip_address,
        changes={"order_id": str(order_id) if order_id else None},
    )

    records.commit(db, "mark item sold")
    db.refresh(item)
    return InventoryItemOut.model_validate(item)
