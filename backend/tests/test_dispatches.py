"""Tests for store-to-store dispatches."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from backend.app.core.errors import (
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
)
from backend.app.models.dispatch import DispatchStatus
from backend.app.models.employee import Employee
from backend.app.models.inventory import Batch
from backend.app.models.store import Store
from backend.app.schemas.dispatch import (
    DeliveredItem,
    DeliveryConfirm,
    DispatchCreate,
    DispatchItemAdd,
    DispatchOut,
)
from backend.app.schemas.inventory import BatchOut, StockAdjustment
from backend.app.services import dispatch as dispatch_service
from backend.app.services.inventory import adjust_batch_stock, delete_batch, store_stock
from backend.tests.conftest import auth


@pytest.fixture()
def pending_dispatch(
    db: Session,
    manager_employee: Employee,
    store_main: Store,
    store_branch: Store,
    batch_main: BatchOut,
) -> DispatchOut:
    """Four units of batch_main staged from main to branch."""
    dispatch = dispatch_service.create_dispatch(
        db,
        DispatchCreate(
            source_store_id=store_main.id,
            destination_store_id=store_branch.id,
            carrier_name="Pathao",
        ),
        user_id=manager_employee.id,
    )
    return dispatch_service.add_item(
        db,
        dispatch.id,
        DispatchItemAdd(batch_id=batch_main.id, quantity=4),
        user_id=manager_employee.id,
    )


def _ship(db: Session, dispatch_id: uuid.UUID, user_id: uuid.UUID) -> DispatchOut:
    dispatch_service.approve_dispatch(db, dispatch_id, user_id=user_id)
    return dispatch_service.mark_dispatched(db, dispatch_id, user_id=user_id)


class TestAssemble:
    def test_create(self, pending_dispatch: DispatchOut) -> None:
        year = datetime.now(timezone.utc).year
        assert pending_dispatch.dispatch_number == f"DSP-{year}-00001"
        assert pending_dispatch.status == DispatchStatus.PENDING
        assert pending_dispatch.source_store_name == "Test Main Store"
        assert pending_dispatch.total_items == 4
        assert pending_dispatch.total_cost == Decimal("2400")
        assert pending_dispatch.total_value == Decimal("4000")

    def test_same_store_rejected(
        self, db: Session, manager_employee: Employee, store_main: Store
    ) -> None:
        with pytest.raises(InvalidArgumentError):
            dispatch_service.create_dispatch(
                db,
                DispatchCreate(
                    source_store_id=store_main.id, destination_store_id=store_main.id
                ),
                user_id=manager_employee.id,
            )

    def test_unknown_destination(
        self, db: Session, manager_employee: Employee, store_main: Store
    ) -> None:
        with pytest.raises(NotFoundError, match="Destination store"):
            dispatch_service.create_dispatch(
                db,
                DispatchCreate(
                    source_store_id=store_main.id, destination_store_id=uuid.uuid4()
                ),
                user_id=manager_employee.id,
            )

    def test_same_batch_merges(
        self,
        db: Session,
        manager_employee: Employee,
        batch_main: BatchOut,
        pending_dispatch: DispatchOut,
    ) -> None:
        out = dispatch_service.add_item(
            db,
            pending_dispatch.id,
            DispatchItemAdd(batch_id=batch_main.id, quantity=3),
            user_id=manager_employee.id,
        )
        assert len(out.items) == 1
        assert out.items[0].quantity == 7

    def test_cannot_exceed_batch_stock(
        self,
        db: Session,
        manager_employee: Employee,
        batch_main: BatchOut,
        pending_dispatch: DispatchOut,
    ) -> None:
        with pytest.raises(InvalidArgumentError, match="Insufficient stock"):
            dispatch_service.add_item(
                db,
                pending_dispatch.id,
                DispatchItemAdd(batch_id=batch_main.id, quantity=7),
                user_id=manager_employee.id,
            )

    def test_batch_must_be_at_source(
        self,
        db: Session,
        manager_employee: Employee,
        store_main: Store,
        store_branch: Store,
        batch_main: BatchOut,
    ) -> None:
        reverse = dispatch_service.create_dispatch(
            db,
            DispatchCreate(
                source_store_id=store_branch.id, destination_store_id=store_main.id
            ),
            user_id=manager_employee.id,
        )
        with pytest.raises(InvalidArgumentError, match="source store"):
            dispatch_service.add_item(
                db,
                reverse.id,
                DispatchItemAdd(batch_id=batch_main.id, quantity=1),
                user_id=manager_employee.id,
            )

    def test_remove_item(
        self, db: Session, manager_employee: Employee, pending_dispatch: DispatchOut
    ) -> None:
        out = dispatch_service.remove_item(
            db, pending_dispatch.id, pending_dispatch.items[0].id, user_id=manager_employee.id
        )
        assert out.items == []

        with pytest.raises(InvalidArgumentError, match="without items"):
            dispatch_service.approve_dispatch(db, pending_dispatch.id, user_id=manager_employee.id)

    def test_batch_on_dispatch_cannot_be_deleted(
        self, db: Session, batch_main: BatchOut, pending_dispatch: DispatchOut
    ) -> None:
        with pytest.raises(InvalidArgumentError, match="dispatch"):
            delete_batch(db, batch_main.id)


class TestLifecycle:
    def test_ship_deducts_source_stock(
        self,
        db: Session,
        manager_employee: Employee,
        store_main: Store,
        batch_main: BatchOut,
        pending_dispatch: DispatchOut,
    ) -> None:
        shipped = _ship(db, pending_dispatch.id, manager_employee.id)

        assert shipped.status == DispatchStatus.IN_TRANSIT
        assert shipped.approved_by == manager_employee.id
        assert shipped.dispatched_at is not None
        assert store_stock(db, batch_main.product_id, store_main.id) == 6

    def test_items_frozen_after_approval(
        self,
        db: Session,
        manager_employee: Employee,
        batch_main: BatchOut,
        pending_dispatch: DispatchOut,
    ) -> None:
        dispatch_service.approve_dispatch(db, pending_dispatch.id, user_id=manager_employee.id)
        with pytest.raises(InvalidArgumentError, match="pending"):
            dispatch_service.add_item(
                db,
                pending_dispatch.id,
                DispatchItemAdd(batch_id=batch_main.id, quantity=1),
                user_id=manager_employee.id,
            )

    def test_ship_refused_when_stock_gone(
        self,
        db: Session,
        manager_employee: Employee,
        batch_main: BatchOut,
        pending_dispatch: DispatchOut,
    ) -> None:
        dispatch_service.approve_dispatch(db, pending_dispatch.id, user_id=manager_employee.id)
        adjust_batch_stock(db, batch_main.id, StockAdjustment(adjustment=-8, reason="Theft"))

        with pytest.raises(InvalidArgumentError, match="Insufficient stock"):
            dispatch_service.mark_dispatched(db, pending_dispatch.id, user_id=manager_employee.id)
        assert dispatch_service.get_dispatch(db, pending_dispatch.id).status == DispatchStatus.APPROVED

    def test_deliver_creates_destination_batch(
        self,
        db: Session,
        manager_employee: Employee,
        store_branch: Store,
        batch_main: BatchOut,
        pending_dispatch: DispatchOut,
    ) -> None:
        _ship(db, pending_dispatch.id, manager_employee.id)
        delivered = dispatch_service.mark_delivered(
            db, pending_dispatch.id, None, user_id=manager_employee.id
        )

        assert delivered.status == DispatchStatus.DELIVERED
        assert delivered.items[0].received_quantity == 4
        target = (
            db.query(Batch)
            .filter(
                Batch.batch_number == batch_main.batch_number,
                Batch.store_id == store_branch.id,
            )
            .one()
        )
        assert target.quantity == 4
        assert target.cost_price == Decimal("600")

    def test_partial_delivery(
        self,
        db: Session,
        manager_employee: Employee,
        store_branch: Store,
        batch_main: BatchOut,
        pending_dispatch: DispatchOut,
    ) -> None:
        _ship(db, pending_dispatch.id, manager_employee.id)
        item_id = pending_dispatch.items[0].id

        delivered = dispatch_service.mark_delivered(
            db,
            pending_dispatch.id,
            DeliveryConfirm(
                items=[
                    DeliveredItem(
                        item_id=item_id,
                        received_quantity=2,
                        damaged_quantity=1,
                        missing_quantity=1,
                    )
                ]
            ),
            user_id=manager_employee.id,
        )

        assert delivered.items[0].damaged_quantity == 1
        assert store_stock(db, batch_main.product_id, store_branch.id) == 2

    def test_delivery_counts_must_add_up(
        self, db: Session, manager_employee: Employee, pending_dispatch: DispatchOut
    ) -> None:
        _ship(db, pending_dispatch.id, manager_employee.id)
        with pytest.raises(InvalidArgumentError, match="add up to 4"):
            dispatch_service.mark_delivered(
                db,
                pending_dispatch.id,
                DeliveryConfirm(
                    items=[
                        DeliveredItem(
                            item_id=pending_dispatch.items[0].id, received_quantity=3
                        )
                    ]
                ),
                user_id=manager_employee.id,
            )
        assert dispatch_service.get_dispatch(db, pending_dispatch.id).status == DispatchStatus.IN_TRANSIT

    def test_unknown_delivery_item(
        self, db: Session, manager_employee: Employee, pending_dispatch: DispatchOut
    ) -> None:
        _ship(db, pending_dispatch.id, manager_employee.id)
        with pytest.raises(InvalidArgumentError, match="not on this dispatch"):
            dispatch_service.mark_delivered(
                db,
                pending_dispatch.id,
                DeliveryConfirm(
                    items=[DeliveredItem(item_id=uuid.uuid4(), received_quantity=4)]
                ),
                user_id=manager_employee.id,
            )

    def test_cannot_deliver_before_shipping(
        self, db: Session, manager_employee: Employee, pending_dispatch: DispatchOut
    ) -> None:
        with pytest.raises(InvalidTransitionError):
            dispatch_service.mark_delivered(
                db, pending_dispatch.id, None, user_id=manager_employee.id
            )

    def test_in_transit_cannot_be_cancelled(
        self, db: Session, manager_employee: Employee, pending_dispatch: DispatchOut
    ) -> None:
        _ship(db, pending_dispatch.id, manager_employee.id)
        with pytest.raises(InvalidTransitionError):
            dispatch_service.cancel_dispatch(db, pending_dispatch.id, user_id=manager_employee.id)

    def test_statistics(
        self,
        db: Session,
        manager_employee: Employee,
        store_branch: Store,
        pending_dispatch: DispatchOut,
    ) -> None:
        _ship(db, pending_dispatch.id, manager_employee.id)
        stats = dispatch_service.dispatch_statistics(db, store_id=store_branch.id)

        assert stats.total == 1
        assert stats.by_status["in_transit"] == 1
        assert stats.by_status["pending"] == 0
        assert stats.items_in_transit == 4
        assert stats.value_in_transit == Decimal("4000")


class TestDispatchApi:
    def test_full_flow(
        self,
        client: TestClient,
        manager_token: str,
        store_main: Store,
        store_branch: Store,
        batch_main: BatchOut,
    ) -> None:
        headers = auth(manager_token)
        resp = client.post(
            "/api/v1/dispatches",
            json={
                "source_store_id": str(store_main.id),
                "destination_store_id": str(store_branch.id),
                "expected_delivery_date": "2026-11-01",
            },
            headers=headers,
        )
        assert resp.status_code == 201, resp.text
        dispatch_id = resp.json()["id"]

        resp = client.post(
            f"/api/v1/dispatches/{dispatch_id}/items",
            json={"batch_id": str(batch_main.id), "quantity": 2},
            headers=headers,
        )
        assert resp.status_code == 200, resp.text

        for step in ("approve", "dispatch", "deliver"):
            resp = client.post(f"/api/v1/dispatches/{dispatch_id}/{step}", headers=headers)
            assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "delivered"

        resp = client.get(
            "/api/v1/dispatches", params={"status": "delivered"}, headers=headers
        )
        assert [d["id"] for d in resp.json()] == [dispatch_id]

    def test_staff_cannot_approve(
        self, client: TestClient, staff_token: str, pending_dispatch: DispatchOut
    ) -> None:
        resp = client.post(
            f"/api/v1/dispatches/{pending_dispatch.id}/approve", headers=auth(staff_token)
        )
        assert resp.status_code == 403

    def test_invalid_transition_is_409(
        self, client: TestClient, manager_token: str, pending_dispatch: DispatchOut
    ) -> None:
        resp = client.post(
            f"/api/v1/dispatches/{pending_dispatch.id}/dispatch", headers=auth(manager_token)
        )
        assert resp.status_code == 409

    def test_unknown_dispatch_404(self, client: TestClient, manager_token: str) -> None:
        resp = client.get(f"/api/v1/dispatches/{uuid.uuid4()}", headers=auth(manager_token))
        assert resp.status_code == 404

    def test_statistics_endpoint(
        self, client: TestClient, staff_token: str, pending_dispatch: DispatchOut
    ) -> None:
        resp = client.get("/api/v1/dispatches/statistics", headers=auth(staff_token))
        assert resp.status_code == 200
        assert resp.json()["by_status"]["pending"] == 1
