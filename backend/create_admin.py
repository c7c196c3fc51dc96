"""One-time script to create (or reset) an admin employee.

Usage:
    python -m backend.create_admin
"""

from __future__ import annotations

import getpass

from backend.app.core.database import SessionLocal, init_db
from backend.app.core.security import get_password_hash
from backend.app.models.employee import Employee, RoleEnum
from backend.app.services.employees import find_by_email


def main() -> None:
    email = input("Email [admin@example.com]: ").strip().lower() or "admin@example.com"
    name = input("Name [Administrator]: ").strip() or "Administrator"
    password = getpass.getpass("Password: ")
    if len(password) < 8:
        print("Error: password must be at least 8 characters.")
        return

    init_db()
    db = SessionLocal()
    try:
        existing = find_by_email(db, email)
        if existing:
            existing.hashed_password = get_password_hash(password)
            existing.role = RoleEnum.ADMIN
            existing.is_active = True
            db.commit()
            print("Admin employee already exists, password reset.")
            print(f"  ID:    {existing.id}")
            print(f"  Email: {email}")
            return

        employee = Employee(
            name=name,
            email=email,
            hashed_password=get_password_hash(password),
            role=RoleEnum.ADMIN,
        )
        db.add(employee)
        db.commit()
        db.refresh(employee)

        print("Admin employee created.")
        print(f"  ID:    {employee.id}")
        print(f"  Email: {email}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
