"""Shared test fixtures.

Each test gets its own in-memory SQLite database, so services can commit
freely and tests never see each other's rows.
"""

from __future__ import annotations

import os

# Must be set before the app (and its engine) is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")

from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.api.v1.endpoints.auth import login_limiter
from backend.app.core.database import Base, get_db
from backend.app.core.security import create_access_token, get_password_hash
from backend.app.main import app
# Registers audit_logs on Base.metadata
import backend.app.models.audit  # noqa: F401
from backend.app.models.employee import Employee, RoleEnum
from backend.app.models.inventory import Product
from backend.app.models.store import Store, StoreType
from backend.app.schemas.inventory import BatchCreate, BatchOut
from backend.app.schemas.orders import OrderCreate, OrderItemCreate, OrderOut
from backend.app.services.inventory import create_batch
from backend.app.services.orders import create_order

PASSWORD = "correct-horse-battery"


# ─── Database ────────────────────────────────────────────────────────────────


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    """Yield a session on a fresh in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def client(db: Session) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to the test session."""

    def _override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    login_limiter.reset()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ─── Employees & auth ────────────────────────────────────────────────────────


def _employee(db: Session, name: str, email: str, role: RoleEnum) -> Employee:
    emp = Employee(
        name=name,
        email=email,
        hashed_password=get_password_hash(PASSWORD),
        role=role,
    )
    db.add(emp)
    db.commit()
    db.refresh(emp)
    return emp


@pytest.fixture()
def admin_employee(db: Session) -> Employee:
    return _employee(db, "Test Admin", "admin@test.com", RoleEnum.ADMIN)


@pytest.fixture()
def manager_employee(db: Session) -> Employee:
    return _employee(db, "Test Manager", "manager@test.com", RoleEnum.MANAGER)


@pytest.fixture()
def staff_employee(db: Session) -> Employee:
    return _employee(db, "Test Staff", "staff@test.com", RoleEnum.STAFF)


@pytest.fixture()
def admin_token(admin_employee: Employee) -> str:
    return create_access_token(subject=str(admin_employee.id))


@pytest.fixture()
def manager_token(manager_employee: Employee) -> str:
    return create_access_token(subject=str(manager_employee.id))


@pytest.fixture()
def staff_token(staff_employee: Employee) -> str:
    return create_access_token(subject=str(staff_employee.id))


def auth(token: str) -> dict[str, str]:
    """Return Authorization header dict."""
    return {"Authorization": f"Bearer {token}"}


# ─── Stores & products ───────────────────────────────────────────────────────


@pytest.fixture()
def store_main(db: Session) -> Store:
    s = Store(name="Test Main Store", code="MAIN", store_type=StoreType.STORE)
    db.add(s)
    db.commit()
    db.refresh(s)
    return s


@pytest.fixture()
def store_branch(db: Session) -> Store:
    s = Store(name="Test Branch", code="BR1", store_type=StoreType.STORE)
    db.add(s)
    db.commit()
    db.refresh(s)
    return s


@pytest.fixture()
def product_a(db: Session) -> Product:
    p = Product(name="Saree A", sku="SKU-A", category="Sarees")
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


@pytest.fixture()
def batch_main(
    db: Session, admin_employee: Employee, store_main: Store, product_a: Product
) -> BatchOut:
    """Ten barcoded units of product A at the main store."""
    return create_batch(
        db,
        BatchCreate(
            product_id=product_a.id,
            store_id=store_main.id,
            quantity=10,
            cost_price=Decimal("600"),
            sell_price=Decimal("1000"),
        ),
        user_id=admin_employee.id,
    )


# ─── Orders ──────────────────────────────────────────────────────────────────


@pytest.fixture()
def saree_order(db: Session, admin_employee: Employee, store_main: Store) -> OrderOut:
    """3 x Saree A at 1000, 5% VAT, transport 100, 2000 paid in cash."""
    return create_order(
        db,
        OrderCreate(
            store_id=store_main.id,
            customer_name="Rahima Khatun",
            customer_phone="01700000000",
            items=[
                OrderItemCreate(product_name="Saree A", qty=3, price=Decimal("1000"))
            ],
            vat_rate=Decimal("5"),
            transport_cost=Decimal("100"),
            cash_paid=Decimal("2000"),
        ),
        user_id=admin_employee.id,
    )
