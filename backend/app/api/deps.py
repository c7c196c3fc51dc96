from __future__ import annotations

from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.orm import Session

from backend.app.core.database import get_db
from backend.app.core.security import decode_access_token
from backend.app.models.employee import Employee

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login/access-token")


def get_current_employee(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> Employee:
    """Resolve the bearer token to an active employee (the session context)."""
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        claims = decode_access_token(token)
        subject = claims.get("sub")
        if subject is None:
            raise unauthorized
        employee_id = UUID(subject)
    except (JWTError, ValueError):
        raise unauthorized

    employee = db.get(Employee, employee_id)
    if employee is None:
        raise unauthorized
    if not employee.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Inactive employee"
        )
    return employee
