"""Tests for order exchanges: the pure reconciliation engine, the service and
the ``POST /orders/exchange`` endpoint."""

from __future__ import annotations

import itertools
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from backend.app.core.errors import InvalidArgumentError, NotFoundError, StorageError
from backend.app.models.audit import AuditLog
from backend.app.models.employee import Employee
from backend.app.schemas.orders import OrderOut
from backend.app.services import records
from backend.app.services.calculator import LineItem
from backend.app.services.exchange import (
    NOTE_CUSTOMER_OWES,
    NOTE_NO_DIFFERENCE,
    NOTE_REFUND,
    RemovedProduct,
    ReplacementProduct,
    apply_exchange,
    classify_difference,
    reconcile_exchange,
)
from backend.app.services.orders import cancel_order
from backend.tests.conftest import auth


# ═══════════════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════════════


def _line(item_id: str, name: str, qty: int, price: str, discount: str = "0") -> LineItem:
    item = LineItem(
        id=item_id,
        product_name=name,
        qty=qty,
        price=Decimal(price),
        discount=Decimal(discount),
    )
    item.recalculate()
    return item


def _ids():
    counter = itertools.count(1)
    return lambda: f"new-{next(counter)}"


def _reconcile(items, removed=(), replacements=(), total="3250", paid="2000"):
    return reconcile_exchange(
        items=items,
        original_total=Decimal(total),
        vat_rate=Decimal("5"),
        transport_cost=Decimal("100"),
        total_paid=Decimal(paid),
        removed=removed,
        replacements=replacements,
        new_id=_ids(),
    )


# ═══════════════════════════════════════════════════════════════════════════════
#  Reconciliation engine (no database)
# ═══════════════════════════════════════════════════════════════════════════════


class TestReconcileExchange:
    def test_full_swap_refund(self) -> None:
        items = [_line("1", "Saree A", 3, "1000")]
        outcome = _reconcile(
            items,
            removed=[RemovedProduct(product_id="1", quantity=3)],
            replacements=[ReplacementProduct(name="Saree B", quantity=2, price=Decimal("800"))],
        )

        assert len(outcome.items) == 1
        new = outcome.items[0]
        assert new.product_name == "Saree B"
        assert new.qty == 2
        assert new.amount == Decimal("1600")
        assert outcome.amounts.subtotal == Decimal("1600")
        assert outcome.amounts.vat == Decimal("80")
        assert outcome.amounts.total == Decimal("1780")
        assert outcome.due == Decimal("-220")
        assert outcome.difference == Decimal("-1470")
        assert outcome.note == NOTE_REFUND

    def test_partial_removal_keeps_discount(self) -> None:
        items = [_line("1", "Saree A", 3, "1000", discount="300")]
        outcome = _reconcile(items, removed=[RemovedProduct(product_id="1", quantity=1)])

        assert outcome.items[0].qty == 2
        # price * qty - discount, discount not prorated
        assert outcome.items[0].amount == Decimal("1700")

    def test_removing_more_than_qty_drops_line(self) -> None:
        items = [_line("1", "Saree A", 2, "1000"), _line("2", "Kurti", 1, "500")]
        outcome = _reconcile(items, removed=[RemovedProduct(product_id="1", quantity=5)])

        assert [i.id for i in outcome.items] == ["2"]

    def test_unmatched_removal_is_reported_and_ignored(self) -> None:
        items = [_line("1", "Saree A", 3, "1000")]
        outcome = _reconcile(items, removed=[RemovedProduct(product_id="99", quantity=1)])

        assert outcome.items[0].qty == 3
        assert outcome.unmatched_removals == [RemovedProduct(product_id="99", quantity=1)]
        assert outcome.amounts.total == Decimal("3250")
        assert outcome.note == NOTE_NO_DIFFERENCE

    def test_replacement_merges_case_insensitively(self) -> None:
        items = [_line("1", "Saree A", 3, "1000")]
        outcome = _reconcile(
            items,
            replacements=[ReplacementProduct(name="saree a", quantity=2, price=Decimal("1"))],
        )

        assert len(outcome.items) == 1
        assert outcome.items[0].qty == 5
        # Existing line keeps its own price
        assert outcome.items[0].amount == Decimal("5000")
        assert outcome.note == NOTE_CUSTOMER_OWES

    def test_replacements_merge_with_lines_added_in_same_exchange(self) -> None:
        outcome = _reconcile(
            [],
            replacements=[
                ReplacementProduct(name="Kurti", quantity=1, price=Decimal("500")),
                ReplacementProduct(name="KURTI", quantity=2, price=Decimal("500")),
            ],
            total="0",
            paid="0",
        )

        assert len(outcome.items) == 1
        assert outcome.items[0].qty == 3

    def test_new_line_defaults(self) -> None:
        outcome = _reconcile(
            [], replacements=[ReplacementProduct(name="Scarf", quantity=1, price=Decimal("150"))]
        )
        new = outcome.items[0]

        assert new.id == "new-1"
        assert new.size == "1"
        assert new.discount == Decimal("0")

    def test_input_items_not_mutated(self) -> None:
        items = [_line("1", "Saree A", 3, "1000")]
        _reconcile(items, removed=[RemovedProduct(product_id="1", quantity=1)])
        assert items[0].qty == 3

    def test_classify_difference(self) -> None:
        assert classify_difference(Decimal("1")) == NOTE_CUSTOMER_OWES
        assert classify_difference(Decimal("-0.01")) == NOTE_REFUND
        assert classify_difference(Decimal("0")) == NOTE_NO_DIFFERENCE


# ═══════════════════════════════════════════════════════════════════════════════
#  Service layer
# ═══════════════════════════════════════════════════════════════════════════════


class TestApplyExchange:
    def test_persists_new_snapshot_and_history(
        self, db: Session, admin_employee: Employee, saree_order: OrderOut
    ) -> None:
        line_id = str(saree_order.products[0].id)
        result = apply_exchange(
            db,
            saree_order.id,
            [{"product_id": line_id, "quantity": 3}],
            [{"name": "Saree B", "quantity": 2, "price": "800"}],
            user_id=admin_employee.id,
        )

        assert result["difference"] == Decimal("-1470")
        assert result["total_due"] == Decimal("-220")
        assert result["unmatched_removals"] == []

        order = records.get_order(db, saree_order.id)
        assert [i.product_name for i in order.items] == ["Saree B"]
        assert order.total == Decimal("1780")
        assert order.vat == Decimal("80")
        assert order.due == Decimal("-220")
        assert order.total_paid == Decimal("2000")

        assert len(order.exchanges) == 1
        record = order.exchanges[0]
        assert record.note == NOTE_REFUND
        assert record.original_total == Decimal("3250")
        assert record.new_total == Decimal("1780")
        assert record.removed_products == [{"product_id": line_id, "quantity": 3}]
        assert record.created_by == admin_employee.id

        log = db.query(AuditLog).filter(AuditLog.action == "ORDER_EXCHANGED").one()
        assert log.resource_id == saree_order.order_number

    def test_accepts_order_number(
        self, db: Session, saree_order: OrderOut
    ) -> None:
        result = apply_exchange(
            db, saree_order.order_number, [], [{"name": "Scarf", "quantity": 1, "price": "150"}]
        )
        assert result["order"].amounts.subtotal == Decimal("3150")

    def test_second_exchange_appends_history(
        self, db: Session, saree_order: OrderOut
    ) -> None:
        apply_exchange(db, saree_order.id, [], [{"name": "Scarf", "quantity": 1, "price": "150"}])
        result = apply_exchange(
            db, saree_order.id, [], [{"name": "scarf", "quantity": 1, "price": "150"}]
        )

        history = result["order"].exchange_history
        assert len(history) == 2
        scarf = [p for p in result["order"].products if p.product_name == "Scarf"][0]
        assert scarf.qty == 2

    def test_removal_by_upper_cased_line_id(
        self, db: Session, saree_order: OrderOut
    ) -> None:
        line_id = str(saree_order.products[0].id).upper()
        result = apply_exchange(db, saree_order.id, [{"product_id": line_id, "quantity": 1}], [])

        assert result["unmatched_removals"] == []
        assert result["order"].products[0].qty == 2

    def test_unmatched_removal_reported(
        self, db: Session, saree_order: OrderOut
    ) -> None:
        result = apply_exchange(db, saree_order.id, [{"product_id": "ghost", "quantity": 1}], [])

        assert result["unmatched_removals"] == [{"product_id": "ghost", "quantity": 1}]
        assert result["difference"] == Decimal("0")

    def test_missing_order_id(self, db: Session) -> None:
        with pytest.raises(InvalidArgumentError, match="Missing order ID"):
            apply_exchange(db, None, [], [])

    def test_unknown_order(self, db: Session) -> None:
        with pytest.raises(NotFoundError):
            apply_exchange(db, "ORD-1999-00001", [], [])

    def test_cancelled_order_refused(
        self, db: Session, admin_employee: Employee, saree_order: OrderOut
    ) -> None:
        cancel_order(db, saree_order.id, user_id=admin_employee.id)
        with pytest.raises(InvalidArgumentError):
            apply_exchange(db, saree_order.id, [], [{"name": "X", "quantity": 1, "price": "1"}])

    def test_storage_failure_persists_nothing(
        self, db: Session, saree_order: OrderOut, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def _fail() -> None:
            raise OperationalError("COMMIT", {}, Exception("disk full"))

        monkeypatch.setattr(db, "commit", _fail)
        with pytest.raises(StorageError):
            apply_exchange(
                db, saree_order.id, [], [{"name": "Scarf", "quantity": 1, "price": "150"}]
            )
        monkeypatch.undo()

        order = records.get_order(db, saree_order.id)
        assert order.total == Decimal("3250")
        assert len(order.items) == 1
        assert order.exchanges == []


# ═══════════════════════════════════════════════════════════════════════════════
#  API
# ═══════════════════════════════════════════════════════════════════════════════


class TestExchangeApi:
    def test_exchange_camel_case_round(
        self, client: TestClient, staff_token: str, saree_order: OrderOut
    ) -> None:
        resp = client.post(
            "/api/v1/orders/exchange",
            json={
                "orderId": str(saree_order.id),
                "removedProducts": [
                    {"productId": str(saree_order.products[0].id), "quantity": 3}
                ],
                "replacementProducts": [
                    {"name": "Saree B", "quantity": 2, "price": 800}
                ],
            },
            headers=auth(staff_token),
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["success"] is True
        assert Decimal(body["totalDue"]) == Decimal("-220")
        assert Decimal(body["difference"]) == Decimal("-1470")
        assert body["unmatchedRemovals"] == []
        assert Decimal(body["order"]["amounts"]["total"]) == Decimal("1780")
        assert body["order"]["exchange_history"][0]["note"] == NOTE_REFUND
        assert "total_due" not in body
        assert Decimal(body["order"]["amounts"]["total_discount"]) == Decimal("0")
        assert body["order"]["products"][0]["product_name"] == "Saree B"

    def test_missing_order_id_is_400(
        self, client: TestClient, staff_token: str
    ) -> None:
        resp = client.post(
            "/api/v1/orders/exchange",
            json={"removedProducts": [], "replacementProducts": []},
            headers=auth(staff_token),
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Missing order ID"

    def test_unknown_order_is_404(
        self, client: TestClient, staff_token: str
    ) -> None:
        resp = client.post(
            "/api/v1/orders/exchange",
            json={"orderId": "ORD-1999-00042"},
            headers=auth(staff_token),
        )
        assert resp.status_code == 404

    def test_requires_auth(self, client: TestClient, saree_order: OrderOut) -> None:
        resp = client.post("/api/v1/orders/exchange", json={"orderId": str(saree_order.id)})
        assert resp.status_code == 401
