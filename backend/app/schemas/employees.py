from __future__ import annotations

from datetime import date
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from backend.app.models.employee import RoleEnum


def _normalise_email(v: str) -> str:
    v = v.strip().lower()
    if "@" not in v:
        raise ValueError("Invalid email address")
    return v


class EmployeeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str
    password: str = Field(..., min_length=8, max_length=128)
    role: RoleEnum = RoleEnum.STAFF
    phone: str | None = None
    store_id: UUID | None = None
    join_date: date | None = None

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _normalise_email(v)


class EmployeeUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    phone: str | None = None
    role: RoleEnum | None = None
    store_id: UUID | None = None
    is_active: bool | None = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)


class EmployeeOut(BaseModel):
    id: UUID
    name: str
    email: str
    phone: str | None
    role: RoleEnum
    store_id: UUID | None
    is_active: bool
    join_date: date | None

    class Config:
        from_attributes = True
