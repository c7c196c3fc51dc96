from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.app.core.errors import InvalidArgumentError
from backend.app.models.store import Store, StoreType
from backend.app.schemas.stores import StoreCreate, StoreOut, StoreUpdate
from backend.app.services import records
from backend.app.services.audit import log_action


def _ensure_unique(
    db: Session, name: str | None, code: str | None, exclude: UUID | None = None
) -> None:
    if name is not None:
        query = db.query(Store).filter(func.lower(Store.name) == name.lower())
        if exclude is not None:
            query = query.filter(Store.id != exclude)
        if query.first():
            raise InvalidArgumentError(f"Store '{name}' already exists")
    if code is not None:
        query = db.query(Store).filter(Store.code == code)
        if exclude is not None:
            query = query.filter(Store.id != exclude)
        if query.first():
            raise InvalidArgumentError(f"Store code '{code}' already in use")


def create_store(
    db: Session,
    data: StoreCreate,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> StoreOut:
    _ensure_unique(db, data.name, data.code)

    store = Store(
        name=data.name,
        code=data.code,
        location=data.location,
        store_type=data.store_type,
        pathao_key=data.pathao_key,
    )
    db.add(store)
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="STORE_CREATED",
        resource_type="stores",
        resource_id=str(store.id),
        ip_address=ip_address,
        changes={"name": data.name, "store_type": data.store_type.value},
    )

    records.commit(db, "create store")
    db.refresh(store)
    return StoreOut.model_validate(store)


def update_store(
    db: Session,
    store_id: UUID,
    data: StoreUpdate,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> StoreOut:
    store = records.get_store(db, store_id)
    _ensure_unique(db, data.name, data.code, exclude=store.id)

    changes: dict[str, Any] = {}
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None and field in ("name", "store_type", "is_active"):
            continue
        if getattr(store, field) != value:
            setattr(store, field, value)
            changes[field] = value.value if isinstance(value, StoreType) else value

    if changes:
        log_action(
            db,
            user_id=user_id,
            action="STORE_UPDATED",
            resource_type="stores",
            resource_id=str(store.id),
            ip_address=ip_address,
            changes=changes,
        )
        records.commit(db, "update store")
        db.refresh(store)
    return StoreOut.model_validate(store)


def list_stores(
    db: Session,
    store_type: StoreType | None = None,
    active_only: bool = False,
) -> list[StoreOut]:
    query = db.query(Store)
    if store_type is not None:
        query = query.filter(Store.store_type == store_type)
    if active_only:
        query = query.filter(Store.is_active.is_(True))
    return [StoreOut.model_validate(s) for s in query.order_by(Store.name).all()]


def get_store(db: Session, store_id: UUID) -> StoreOut:
    return StoreOut.model_validate(records.get_store(db, store_id))
