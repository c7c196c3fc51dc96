"""Audit trail.

Services call :func:`log_action` before their single commit so the audit row
lands or fails together with the change it records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.models.audit import AuditLog


def log_action(
    db: Session,
    *,
    user_id: UUID | None,
    action: str,
    resource_type: str,
    resource_id: str,
    changes: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> None:
    """Stage one audit row; ``changes`` must be JSON-ready (money as str)."""
    db.add(
        AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            employee_id=user_id,
            changes=changes,
            ip_address=ip_address,
        )
    )


def list_audit_logs(
    db: Session,
    employee_id: UUID | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[AuditLog]:
    query = db.query(AuditLog)
    if employee_id is not None:
        query = query.filter(AuditLog.employee_id == employee_id)
    if action is not None:
        query = query.filter(AuditLog.action == action)
    if resource_type is not None:
        query = query.filter(AuditLog.resource_type == resource_type)
    if resource_id is not None:
        query = query.filter(AuditLog.resource_id == resource_id)
    if since is not None:
        query = query.filter(AuditLog.created_at >= since)
    if until is not None:
        query = query.filter(AuditLog.created_at < until)
    return (
        query.order_by(AuditLog.created_at.desc(), AuditLog.id)
        .offset(offset)
        .limit(limit)
        .all()
    )


def resource_history(db: Session, resource_type: str, resource_id: str) -> list[AuditLog]:
    """Every change to one resource, oldest first."""
    return (
        db.query(AuditLog)
        .filter(
            AuditLog.resource_type == resource_type,
            AuditLog.resource_id == resource_id,
        )
        .order_by(AuditLog.created_at)
        .all()
    )
