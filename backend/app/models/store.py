from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.database import Base


class StoreType(str, enum.Enum):
    STORE = "store"
    WAREHOUSE = "warehouse"
    ONLINE = "online"


class Store(Base):
    """A physical outlet, a warehouse, or the online shop."""

    __tablename__ = "stores"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    code: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)
    location: Mapped[str | None] = mapped_column(Text, nullable=True)
    store_type: Mapped[StoreType] = mapped_column(
        Enum(StoreType), nullable=False, default=StoreType.STORE
    )
    # Courier (Pathao) merchant key used when booking deliveries from this store
    pathao_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (Index("ix_stores_type", "store_type"),)
