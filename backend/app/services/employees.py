"""Employee accounts.

Mutations are audit-logged and committed here; :func:`authenticate` is the
only read used by the login endpoint.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.app.core.errors import InvalidArgumentError, NotFoundError
from backend.app.core.security import get_password_hash, verify_password
from backend.app.models.employee import Employee, RoleEnum
from backend.app.schemas.employees import EmployeeCreate, EmployeeOut, EmployeeUpdate
from backend.app.services import records
from backend.app.services.audit import log_action


def _get_employee(db: Session, employee_id: UUID) -> Employee:
    employee = db.query(Employee).filter(Employee.id == employee_id).first()
    if employee is None:
        raise NotFoundError("Employee not found")
    return employee


def find_by_email(db: Session, email: str) -> Employee | None:
    return (
        db.query(Employee)
        .filter(func.lower(Employee.email) == email.strip().lower())
        .first()
    )


def authenticate(db: Session, email: str, password: str) -> Employee | None:
    """Return the employee for valid credentials, else None."""
    employee = find_by_email(db, email)
    if employee is None or not verify_password(password, employee.hashed_password):
        return None
    return employee


def list_employees(db: Session, store_id: UUID | None = None) -> list[EmployeeOut]:
    query = db.query(Employee)
    if store_id is not None:
        query = query.filter(Employee.store_id == store_id)
    rows = query.order_by(Employee.created_at.desc()).all()
    return [EmployeeOut.model_validate(e) for e in rows]


def get_employee(db: Session, employee_id: UUID) -> EmployeeOut:
    return EmployeeOut.model_validate(_get_employee(db, employee_id))


def create_employee(
    db: Session,
    data: EmployeeCreate,
    admin_id: UUID | None = None,
    ip_address: str | None = None,
) -> EmployeeOut:
    if find_by_email(db, data.email):
        raise InvalidArgumentError("An employee with this email already exists")
    if data.store_id is not None:
        records.get_store(db, data.store_id)

    employee = Employee(
        name=data.name,
        email=data.email,
        phone=data.phone,
        hashed_password=get_password_hash(data.password),
        role=data.role,
        store_id=data.store_id,
        join_date=data.join_date,
    )
    db.add(employee)
    db.flush()

    log_action(
        db,
        user_id=admin_id,
        action="EMPLOYEE_CREATED",
        resource_type="employees",
        resource_id=str(employee.id),
        ip_address=ip_address,
        changes={"email": data.email, "role": data.role.value},
    )

    records.commit(db, "create employee")
    db.refresh(employee)
    return EmployeeOut.model_validate(employee)


def update_employee(
    db: Session,
    employee_id: UUID,
    data: EmployeeUpdate,
    admin_id: UUID,
    ip_address: str | None = None,
) -> EmployeeOut:
    """Admins cannot deactivate or demote themselves."""
    employee = _get_employee(db, employee_id)
    if employee.id == admin_id:
        if data.is_active is False:
            raise InvalidArgumentError("Cannot deactivate yourself")
        if data.role is not None and data.role != RoleEnum.ADMIN:
            raise InvalidArgumentError("Cannot change your own role")
    if data.store_id is not None:
        records.get_store(db, data.store_id)

    changes: dict[str, Any] = {}
    if data.name is not None and data.name != employee.name:
        changes["name"] = {"old": employee.name, "new": data.name}
        employee.name = data.name
    if data.phone is not None and data.phone != employee.phone:
        changes["phone"] = {"old": employee.phone, "new": data.phone}
        employee.phone = data.phone
    if data.role is not None and data.role != employee.role:
        changes["role"] = {"old": employee.role.value, "new": data.role.value}
        employee.role = data.role
    if data.store_id is not None and data.store_id != employee.store_id:
        changes["store_id"] = {
            "old": str(employee.store_id) if employee.store_id else None,
            "new": str(data.store_id),
        }
        employee.store_id = data.store_id
    if data.is_active is not None and data.is_active != employee.is_active:
        changes["is_active"] = data.is_active
        employee.is_active = data.is_active

    if changes:
        log_action(
            db,
            user_id=admin_id,
            action="EMPLOYEE_UPDATED",
            resource_type="employees",
            resource_id=str(employee.id),
            ip_address=ip_address,
            changes=changes,
        )
        records.commit(db, "update employee")
        db.refresh(employee)
    return EmployeeOut.model_validate(employee)


def change_own_password(
    db: Session,
    employee_id: UUID,
    current_password: str,
    new_password: str,
) -> None:
    employee = _get_employee(db, employee_id)
    if not verify_password(current_password, employee.hashed_password):
        raise InvalidArgumentError("Current password is incorrect")

    employee.hashed_password = get_password_hash(new_password)
    log_action(
        db,
        user_id=employee_id,
        action="EMPLOYEE_PASSWORD_CHANGED",
        resource_type="employees",
        resource_id=str(employee_id),
    )
    records.commit(db, "change password")
