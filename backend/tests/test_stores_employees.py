"""Tests for store and employee administration plus the audit log listing."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from backend.app.core.errors import InvalidArgumentError
from backend.app.models.employee import Employee, RoleEnum
from backend.app.models.store import Store, StoreType
from backend.app.schemas.employees import EmployeeCreate, EmployeeUpdate
from backend.app.schemas.orders import OrderOut
from backend.app.schemas.stores import StoreCreate, StoreUpdate
from backend.app.services.employees import create_employee, update_employee
from backend.app.services.stores import create_store, list_stores, update_store
from backend.tests.conftest import auth


class TestStores:
    def test_names_unique_ignoring_case(self, db: Session, store_main: Store) -> None:
        with pytest.raises(InvalidArgumentError, match="already exists"):
            create_store(db, StoreCreate(name="test main store"))

    def test_codes_unique(self, db: Session, store_main: Store) -> None:
        with pytest.raises(InvalidArgumentError, match="MAIN"):
            create_store(db, StoreCreate(name="Another", code="MAIN"))

    def test_update_keeps_own_name(self, db: Session, store_main: Store) -> None:
        out = update_store(
            db, store_main.id, StoreUpdate(name="Test Main Store", location="Gulshan")
        )
        assert out.location == "Gulshan"

    def test_list_filters(self, db: Session, store_main: Store) -> None:
        create_store(db, StoreCreate(name="Central Warehouse", store_type=StoreType.WAREHOUSE))
        update_store(db, store_main.id, StoreUpdate(is_active=False))

        assert [s.name for s in list_stores(db, store_type=StoreType.WAREHOUSE)] == [
            "Central Warehouse"
        ]
        assert [s.name for s in list_stores(db, active_only=True)] == ["Central Warehouse"]

    def test_api(self, client: TestClient, manager_token: str, staff_token: str) -> None:
        resp = client.post(
            "/api/v1/stores",
            json={"name": "Dhanmondi", "code": "DHN"},
            headers=auth(manager_token),
        )
        assert resp.status_code == 201, resp.text

        resp = client.post(
            "/api/v1/stores", json={"name": "Uttara"}, headers=auth(staff_token)
        )
        assert resp.status_code == 403

        resp = client.get("/api/v1/stores", headers=auth(staff_token))
        assert [s["code"] for s in resp.json()] == ["DHN"]


class TestEmployees:
    def test_duplicate_email(self, db: Session, staff_employee: Employee) -> None:
        with pytest.raises(InvalidArgumentError):
            create_employee(
                db,
                EmployeeCreate(name="Copy", email="Staff@Test.com", password="long-enough"),
            )

    def test_admin_cannot_demote_self(self, db: Session, admin_employee: Employee) -> None:
        with pytest.raises(InvalidArgumentError, match="own role"):
            update_employee(
                db,
                admin_employee.id,
                EmployeeUpdate(role=RoleEnum.STAFF),
                admin_id=admin_employee.id,
            )

    def test_admin_cannot_deactivate_self(
        self, db: Session, admin_employee: Employee
    ) -> None:
        with pytest.raises(InvalidArgumentError, match="deactivate"):
            update_employee(
                db,
                admin_employee.id,
                EmployeeUpdate(is_active=False),
                admin_id=admin_employee.id,
            )

    def test_promote(
        self, db: Session, admin_employee: Employee, staff_employee: Employee
    ) -> None:
        out = update_employee(
            db,
            staff_employee.id,
            EmployeeUpdate(role=RoleEnum.MANAGER),
            admin_id=admin_employee.id,
        )
        assert out.role == RoleEnum.MANAGER

    def test_api(self, client: TestClient, admin_token: str, store_main: Store) -> None:
        resp = client.post(
            "/api/v1/employees",
            json={
                "name": "Farhana",
                "email": "Farhana@Shop.com",
                "password": "a-decent-password",
                "store_id": str(store_main.id),
            },
            headers=auth(admin_token),
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["email"] == "farhana@shop.com"
        assert body["role"] == "staff"
        assert "hashed_password" not in body

        resp = client.get(
            "/api/v1/employees",
            params={"store_id": str(store_main.id)},
            headers=auth(admin_token),
        )
        assert [e["name"] for e in resp.json()] == ["Farhana"]

    def test_short_password_rejected(self, client: TestClient, admin_token: str) -> None:
        resp = client.post(
            "/api/v1/employees",
            json={"name": "X", "email": "x@shop.com", "password": "short"},
            headers=auth(admin_token),
        )
        assert resp.status_code == 422


class TestAuditLogs:
    def test_filters(
        self,
        client: TestClient,
        manager_token: str,
        manager_employee: Employee,
    ) -> None:
        client.post(
            "/api/v1/stores", json={"name": "Banani"}, headers=auth(manager_token)
        )
        resp = client.get(
            "/api/v1/audit-logs",
            params={"action": "STORE_CREATED"},
            headers=auth(manager_token),
        )
        assert resp.status_code == 200
        logs = resp.json()
        assert len(logs) == 1
        assert logs[0]["employee_id"] == str(manager_employee.id)
        assert logs[0]["resource_type"] == "stores"
        assert logs[0]["changes"]["name"] == "Banani"

    def test_resource_history(
        self,
        client: TestClient,
        manager_token: str,
        saree_order: OrderOut,
    ) -> None:
        client.post(
            f"/api/v1/orders/{saree_order.id}/cancel", headers=auth(manager_token)
        )
        resp = client.get(
            f"/api/v1/audit-logs/orders/{saree_order.order_number}",
            headers=auth(manager_token),
        )
        assert resp.status_code == 200
        assert sorted(r["action"] for r in resp.json()) == ["ORDER_CANCELLED", "ORDER_CREATED"]
