"""Defective units.

Reporting a defect flips the scanned unit to ``defective`` and records the
defect in the same commit; removing the record puts the unit back in stock.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.errors import InvalidArgumentError
from backend.app.models.inventory import Defect, DefectStatus, InventoryItemStatus
from backend.app.schemas.defects import CUSTOMER_RETURN, DefectOut, DefectUpdate
from backend.app.services import records
from backend.app.services.audit import log_action
from backend.app.services.lifecycle import INVENTORY_ITEM_TRANSITIONS, transition

logger = logging.getLogger(__name__)


def report_defect(
    db: Session,
    barcode: str | None,
    reason: str | None,
    store_id: UUID | None = None,
    order_id: UUID | str | None = None,
    customer_phone: str | None = None,
    return_reason: str | None = None,
    notes: str | None = None,
    details: dict[str, Any] | None = None,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> DefectOut:
    if not barcode or not barcode.strip():
        raise InvalidArgumentError("Barcode is required")
    if not reason or not reason.strip():
        raise InvalidArgumentError("Defect reason is required")

    item = records.get_inventory_item(db, barcode)

    if item.status in (InventoryItemStatus.IN_STOCK, InventoryItemStatus.SOLD):
        if store_id is None:
            raise InvalidArgumentError("Store is required to report this item as defective")
    if store_id is not None:
        records.get_store(db, store_id)

    if reason == CUSTOMER_RETURN and item.status == InventoryItemStatus.SOLD:
        if not order_id or not customer_phone:
            raise InvalidArgumentError(
                "Order and customer phone are required for a customer return"
            )
    if order_id:
        original_order_id = records.get_order(db, order_id).id
    else:
        original_order_id = item.order_id

    previous_status = item.status
    item.status = transition(
        "inventory item",
        INVENTORY_ITEM_TRANSITIONS,
        item.status,
        InventoryItemStatus.DEFECTIVE,
    )
    if previous_status == InventoryItemStatus.SOLD and store_id is not None:
        # A sold unit coming back sits at the store that took it back
        item.store_id = store_id
    records.replace_inventory_item(db, item)

    defect = Defect(
        barcode=item.barcode,
        product_id=item.product_id,
        product_name=item.product.name,
        reason=reason,
        status=DefectStatus.PENDING,
        store_id=store_id,
        added_by=user_id,
        original_order_id=original_order_id,
        customer_phone=customer_phone,
        cost_price=item.cost_price,
        original_selling_price=item.selling_price,
        return_reason=return_reason,
        notes=notes,
        details=details or None,
    )
    records.append_defect(db, defect)
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="DEFECT_REPORTED",
        resource_type="defects",
        resource_id=str(defect.id),
        ip_address=ip_address,
        changes={
            "barcode": item.barcode,
            "reason": reason,
            "previous_status": previous_status.value,
        },
    )

    records.commit(db, "report defect")
    db.refresh(defect)
    logger.info("Item %s reported defective (%s)", item.barcode, reason)
    return DefectOut.model_validate(defect)


def list_defects(
    db: Session,
    store_id: UUID | None = None,
    status: DefectStatus | None = None,
) -> list[DefectOut]:
    query = db.query(Defect)
    if store_id is not None:
        query = query.filter(Defect.store_id == store_id)
    if status is not None:
        query = query.filter(Defect.status == status)
    rows = query.order_by(Defect.added_at.desc()).all()
    return [DefectOut.model_validate(d) for d in rows]


def get_defect(db: Session, defect_id: UUID) -> DefectOut:
    return DefectOut.model_validate(records.get_defect(db, defect_id))


def update_defect(
    db: Session,
    defect_id: UUID,
    data: DefectUpdate,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> DefectOut:
    defect = records.get_defect(db, defect_id)

    changes: dict[str, Any] = {}
    if data.status is not None:
        defect.status = data.status
        changes["status"] = data.status.value
    if data.selling_price is not None:
        defect.selling_price = data.selling_price
        changes["selling_price"] = str(data.selling_price)
    if data.notes is not None:
        defect.notes = data.notes
        changes["notes"] = data.notes
    if not changes:
        raise InvalidArgumentError("Nothing to update")

    log_action(
        db,
        user_id=user_id,
        action="DEFECT_UPDATED",
        resource_type="defects",
        resource_id=str(defect.id),
        ip_address=ip_address,
        changes=changes,
    )

    records.commit(db, "update defect")
    db.refresh(defect)
    return DefectOut.model_validate(defect)


def remove_defect(
    db: Session,
    defect_id: UUID,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> None:
    """Withdraw a defect report and return the unit to stock."""
    defect = records.get_defect(db, defect_id)
    if defect.status in (DefectStatus.SOLD, DefectStatus.DISPOSED):
        raise InvalidArgumentError(
            f"Cannot remove a defect that is already {defect.status.value}"
        )

    item = records.get_inventory_item(db, defect.barcode)
    item.status = transition(
        "inventory item",
        INVENTORY_ITEM_TRANSITIONS,
        item.status,
        InventoryItemStatus.IN_STOCK,
    )
    item.order_id = None
    records.replace_inventory_item(db, item)
    db.delete(defect)

    log_action(
        db,
        user_id=user_id,
        action="DEFECT_REMOVED",
        resource_type="defects",
        resource_id=str(defect_id),
        ip_address=ip_address,
        changes={"barcode": item.barcode},
    )

    records.commit(db, "remove defect")
    logger.info("Defect on %s withdrawn, item back in stock", item.barcode)
