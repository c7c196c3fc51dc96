from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field

from backend.app.models.store import StoreType


class StoreCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    code: str | None = Field(None, max_length=20)
    location: str | None = None
    store_type: StoreType = StoreType.STORE
    pathao_key: str | None = None


class StoreUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    code: str | None = Field(None, max_length=20)
    location: str | None = None
    store_type: StoreType | None = None
    pathao_key: str | None = None
    is_active: bool | None = None


class StoreOut(BaseModel):
    id: UUID
    name: str
    code: str | None
    location: str | None
    store_type: StoreType
    pathao_key: str | None
    is_active: bool

    class Config:
        from_attributes = True
