from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.app.api.permission_deps import require_permission
from backend.app.core.database import get_db
from backend.app.models.employee import Employee
from backend.app.schemas.audit import AuditLogOut
from backend.app.services import audit as audit_service

router = APIRouter()


@router.get("", response_model=list[AuditLogOut])
def get_audit_logs(
    employee_id: UUID | None = Query(None),
    action: str | None = Query(None, description="e.g. ORDER_EXCHANGED"),
    resource_type: str | None = Query(None, description="e.g. orders, dispatches"),
    resource_id: str | None = Query(None),
    since: datetime | None = Query(None),
    until: datetime | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("audit:read")),
) -> list[AuditLogOut]:
    rows = audit_service.list_audit_logs(
        db,
        employee_id=employee_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        since=since,
        until=until,
        limit=limit,
        offset=offset,
    )
    return [AuditLogOut.model_validate(r) for r in rows]


@router.get("/{resource_type}/{resource_id}", response_model=list[AuditLogOut])
def get_resource_history(
    resource_type: str,
    resource_id: str,
    db: Session = Depends(get_db),
    _current: Employee = Depends(require_permission("audit:read")),
) -> list[AuditLogOut]:
    """Change history of one order, dispatch, defect ..."""
    rows = audit_service.resource_history(db, resource_type, resource_id)
    return [AuditLogOut.model_validate(r) for r in rows]
