"""Role-based permission dependencies.

Usage in endpoints::

    @router.post("")
    def create_dispatch(
        body: DispatchCreate,
        db: Session = Depends(get_db),
        current_employee: Employee = Depends(require_permission("dispatch:write")),
    ):
        ...
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, status

from backend.app.api.deps import get_current_employee
from backend.app.models.employee import Employee, RoleEnum

_READ = {
    "order:read",
    "inventory:read",
    "defect:read",
    "dispatch:read",
    "rebalancing:read",
    "store:read",
}

_STAFF = _READ | {
    "order:write",
    "order:exchange",
    "defect:write",
    "rebalancing:write",
}

_MANAGER = _STAFF | {
    "inventory:write",
    "dispatch:write",
    "dispatch:approve",
    "rebalancing:approve",
    "store:manage",
    "audit:read",
}

ROLE_PERMISSIONS: dict[RoleEnum, frozenset[str]] = {
    RoleEnum.STAFF: frozenset(_STAFF),
    RoleEnum.MANAGER: frozenset(_MANAGER),
    RoleEnum.ADMIN: frozenset(_MANAGER | {"employee:manage"}),
}


def permissions_for(employee: Employee) -> frozenset[str]:
    return ROLE_PERMISSIONS.get(employee.role, frozenset())


def require_permission(*permission_codes: str):
    """FastAPI dependency factory; the employee must hold **all** listed codes.

    Returns the authenticated ``Employee`` so the endpoint can use it::

        current_employee = Depends(require_permission("order:write"))
    """

    def _checker(
        current_employee: Employee = Depends(get_current_employee),
    ) -> Employee:
        missing = set(permission_codes) - permissions_for(current_employee)
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(sorted(missing))}",
            )
        return current_employee

    return _checker
