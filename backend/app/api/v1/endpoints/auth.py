from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_employee, oauth2_scheme
from backend.app.api.permission_deps import permissions_for
from backend.app.core.config import settings
from backend.app.core.database import get_db
from backend.app.core.errors import ServiceError
from backend.app.core.security import create_access_token, revoke_token
from backend.app.middleware.rate_limit import InMemoryRateLimiter
from backend.app.models.employee import Employee
from backend.app.schemas.employees import EmployeeOut, PasswordChange
from backend.app.services import records
from backend.app.services.audit import log_action
from backend.app.services.employees import authenticate, change_own_password

logger = logging.getLogger(__name__)

router = APIRouter()

login_limiter = InMemoryRateLimiter(
    window_seconds=settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
    max_attempts=settings.LOGIN_RATE_LIMIT_ATTEMPTS,
)


@router.post("/login/access-token")
def login_access_token(
    request: Request,
    db: Session = Depends(get_db),
    form_data: OAuth2PasswordRequestForm = Depends(),
) -> dict[str, str]:
    """OAuth2 password flow; ``username`` carries the employee's email."""
    ip = request.client.host if request.client else "unknown"
    login_limiter.check(ip)

    employee = authenticate(db, form_data.username, form_data.password)
    if employee is None:
        log_action(
            db,
            user_id=None,
            action="LOGIN_FAILED",
            resource_type="auth",
            resource_id=form_data.username,
            ip_address=ip,
            changes={"reason": "invalid_credentials"},
        )
        records.commit(db, "record failed login")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not employee.is_active:
        log_action(
            db,
            user_id=employee.id,
            action="LOGIN_FAILED",
            resource_type="auth",
            resource_id=form_data.username,
            ip_address=ip,
            changes={"reason": "inactive_employee"},
        )
        records.commit(db, "record failed login")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Inactive employee"
        )

    log_action(
        db,
        user_id=employee.id,
        action="LOGIN_SUCCESS",
        resource_type="auth",
        resource_id=str(employee.id),
        ip_address=ip,
        changes={"email": employee.email, "role": employee.role.value},
    )
    records.commit(db, "record login")

    return {
        "access_token": create_access_token(subject=str(employee.id)),
        "token_type": "bearer",
    }


@router.post("/logout")
def logout(
    token: str = Depends(oauth2_scheme),
    current_employee: Employee = Depends(get_current_employee),
) -> dict[str, str]:
    """Invalidate the current access token."""
    revoke_token(token)
    logger.info("Employee %s logged out", current_employee.id)
    return {"detail": "Logged out successfully"}


@router.get("/me")
def read_current_employee(
    current_employee: Employee = Depends(get_current_employee),
) -> dict:
    out = EmployeeOut.model_validate(current_employee).model_dump(mode="json")
    out["permissions"] = sorted(permissions_for(current_employee))
    return out


@router.post("/me/password")
def change_password(
    body: PasswordChange,
    db: Session = Depends(get_db),
    current_employee: Employee = Depends(get_current_employee),
) -> dict[str, str]:
    try:
        change_own_password(
            db, current_employee.id, body.current_password, body.new_password
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"detail": "Password changed"}
