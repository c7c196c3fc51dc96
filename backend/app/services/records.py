"""Record store access shared by the services.

Lookups raise :class:`NotFoundError`; the ``replace_*``/``append_*`` helpers
only stage changes on the session.  Nothing is written until the calling
service runs :func:`commit`, so a multi-record operation either lands as a
whole or not at all.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from backend.app.core.errors import NotFoundError, StorageError
from backend.app.models.inventory import Batch, Defect, InventoryItem, Product
from backend.app.models.order import Order
from backend.app.models.store import Store

logger = logging.getLogger(__name__)


def _as_uuid(value: UUID | str) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def commit(db: Session, action: str) -> None:
    """Commit the session, rolling back and raising StorageError on failure."""
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Storage failure while trying to %s: %s", action, e)
        raise StorageError(f"Failed to {action}") from e


# ─── Orders ──────────────────────────────────────────────────────────────────


def get_order(db: Session, order_id: UUID | str, for_update: bool = False) -> Order:
    """Load an order by id or by order number.

    ``for_update`` takes a row lock on databases that support it so two
    exchanges on the same order cannot interleave.
    """
    stmt = select(Order).options(
        selectinload(Order.items), selectinload(Order.exchanges)
    )
    uid = _as_uuid(order_id)
    if uid is not None:
        stmt = stmt.where(Order.id == uid)
    else:
        stmt = stmt.where(Order.order_number == str(order_id))
    if for_update:
        stmt = stmt.with_for_update()

    order = db.execute(stmt).scalars().first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def replace_order(db: Session, order: Order) -> None:
    db.add(order)


# ─── Inventory items & defects ───────────────────────────────────────────────


def get_inventory_item(db: Session, barcode: str) -> InventoryItem:
    item = db.query(InventoryItem).filter(InventoryItem.barcode == barcode).first()
    if item is None:
        raise NotFoundError("Item not found in inventory")
    return item


def replace_inventory_item(db: Session, item: InventoryItem) -> None:
    db.add(item)


def append_defect(db: Session, defect: Defect) -> None:
    db.add(defect)


def get_defect(db: Session, defect_id: UUID) -> Defect:
    defect = db.query(Defect).filter(Defect.id == defect_id).first()
    if defect is None:
        raise NotFoundError("Defect not found")
    return defect


# ─── Reference data ──────────────────────────────────────────────────────────


def get_store(db: Session, store_id: UUID, label: str = "Store") -> Store:
    store = db.query(Store).filter(Store.id == store_id).first()
    if store is None:
        raise NotFoundError(f"{label} not found")
    return store


def get_product(db: Session, product_id: UUID) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def get_batch(db: Session, batch_id: UUID) -> Batch:
    batch = db.query(Batch).filter(Batch.id == batch_id).first()
    if batch is None:
        raise NotFoundError(f"Batch {batch_id} not found")
    return batch
