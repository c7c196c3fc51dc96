"""Tests for products, batches and barcoded inventory items."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from backend.app.core.errors import InvalidArgumentError, InvalidTransitionError, NotFoundError
from backend.app.models.employee import Employee
from backend.app.models.inventory import InventoryItem, InventoryItemStatus, Product
from backend.app.models.store import Store
from backend.app.schemas.inventory import BatchCreate, BatchOut, ProductCreate, StockAdjustment
from backend.app.schemas.orders import OrderOut
from backend.app.services.inventory import (
    adjust_batch_stock,
    create_batch,
    create_product,
    delete_batch,
    generate_batch_number,
    get_batch,
    list_batches,
    mark_item_sold,
    store_stock,
)
from backend.tests.conftest import auth


class TestProducts:
    def test_duplicate_sku_rejected(self, db: Session, product_a: Product) -> None:
        with pytest.raises(InvalidArgumentError, match="SKU-A"):
            create_product(db, ProductCreate(name="Other", sku="SKU-A"))

    def test_staff_cannot_create(self, client: TestClient, staff_token: str) -> None:
        resp = client.post(
            "/api/v1/inventory/products",
            json={"name": "Kurti", "sku": "SKU-K"},
            headers=auth(staff_token),
        )
        assert resp.status_code == 403

    def test_manager_creates(self, client: TestClient, manager_token: str) -> None:
        resp = client.post(
            "/api/v1/inventory/products",
            json={"name": "Kurti", "sku": "SKU-K", "category": "Tops"},
            headers=auth(manager_token),
        )
        assert resp.status_code == 201, resp.text
        listed = client.get("/api/v1/inventory/products", headers=auth(manager_token))
        assert [p["sku"] for p in listed.json()] == ["SKU-K"]


class TestBatches:
    def test_batch_number_format(self) -> None:
        day = datetime(2026, 3, 9, tzinfo=timezone.utc)
        assert generate_batch_number(12, day) == "BATCH-20260309-0012"

    def test_barcodes_issued_per_unit(self, batch_main: BatchOut) -> None:
        today = datetime.now(timezone.utc)
        assert batch_main.batch_number == f"BATCH-{today:%Y%m%d}-0001"
        assert sorted(batch_main.barcodes) == [
            f"{batch_main.batch_number}-{n:04d}" for n in range(1, 11)
        ]
        assert batch_main.total_value == Decimal("6000")
        assert batch_main.sell_value == Decimal("10000")

    def test_second_batch_same_day(
        self,
        db: Session,
        store_main: Store,
        product_a: Product,
        batch_main: BatchOut,
    ) -> None:
        second = create_batch(
            db,
            BatchCreate(
                product_id=product_a.id,
                store_id=store_main.id,
                quantity=2,
                cost_price=Decimal("500"),
                sell_price=Decimal("900"),
                generate_barcodes=False,
            ),
        )
        assert second.batch_number.endswith("-0002")
        assert second.barcodes == []
        assert store_stock(db, product_a.id, store_main.id) == 12

    def test_stock_is_per_store(
        self, db: Session, store_branch: Store, product_a: Product, batch_main: BatchOut
    ) -> None:
        assert store_stock(db, product_a.id, store_branch.id) == 0
        assert list_batches(db, store_id=store_branch.id) == []
        assert len(list_batches(db, product_id=product_a.id)) == 1

    def test_adjust(self, db: Session, batch_main: BatchOut) -> None:
        out = adjust_batch_stock(
            db, batch_main.id, StockAdjustment(adjustment=-3, reason="Damaged in storage")
        )
        assert out.quantity == 7

    def test_adjust_below_zero(self, db: Session, batch_main: BatchOut) -> None:
        with pytest.raises(InvalidArgumentError):
            adjust_batch_stock(
                db, batch_main.id, StockAdjustment(adjustment=-11, reason="Count")
            )
        assert get_batch(db, batch_main.id).quantity == 10

    def test_delete(self, db: Session, batch_main: BatchOut) -> None:
        delete_batch(db, batch_main.id)

        with pytest.raises(NotFoundError):
            get_batch(db, batch_main.id)
        assert db.query(InventoryItem).count() == 0

    def test_delete_refused_after_sale(self, db: Session, batch_main: BatchOut) -> None:
        mark_item_sold(db, batch_main.barcodes[0])
        with pytest.raises(InvalidArgumentError):
            delete_batch(db, batch_main.id)


class TestItems:
    def test_mark_sold_links_order(
        self, db: Session, batch_main: BatchOut, saree_order: OrderOut
    ) -> None:
        barcode = batch_main.barcodes[0]
        item = mark_item_sold(db, barcode, order_id=saree_order.id)

        assert item.status == InventoryItemStatus.SOLD
        assert item.order_id == saree_order.id

    def test_cannot_sell_twice(self, db: Session, batch_main: BatchOut) -> None:
        barcode = batch_main.barcodes[0]
        mark_item_sold(db, barcode)
        with pytest.raises(InvalidTransitionError):
            mark_item_sold(db, barcode)

    def test_unknown_barcode(self, db: Session) -> None:
        with pytest.raises(NotFoundError):
            mark_item_sold(db, "NOPE-0001")


class TestInventoryApi:
    def test_lookup_and_sell(
        self,
        client: TestClient,
        staff_token: str,
        batch_main: BatchOut,
    ) -> None:
        barcode = batch_main.barcodes[0]
        resp = client.get(f"/api/v1/inventory/items/{barcode}", headers=auth(staff_token))
        assert resp.status_code == 200
        assert resp.json()["status"] == "in_stock"

        resp = client.post(
            f"/api/v1/inventory/items/{barcode}/sell", json={}, headers=auth(staff_token)
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "sold"

        resp = client.post(
            f"/api/v1/inventory/items/{barcode}/sell", json={}, headers=auth(staff_token)
        )
        assert resp.status_code == 409

    def test_unknown_barcode_404(self, client: TestClient, staff_token: str) -> None:
        resp = client.get("/api/v1/inventory/items/NOPE", headers=auth(staff_token))
        assert resp.status_code == 404

    def test_batch_items_filter(
        self, client: TestClient, manager_token: str, batch_main: BatchOut
    ) -> None:
        resp = client.get(
            f"/api/v1/inventory/batches/{batch_main.id}/items",
            params={"status": "in_stock"},
            headers=auth(manager_token),
        )
        assert resp.status_code == 200
        assert len(resp.json()) == 10

    def test_delete_returns_204(
        self, client: TestClient, manager_token: str, batch_main: BatchOut
    ) -> None:
        resp = client.delete(
            f"/api/v1/inventory/batches/{batch_main.id}", headers=auth(manager_token)
        )
        assert resp.status_code == 204

    def test_adjust_below_zero_is_400(
        self, client: TestClient, manager_token: str, batch_main: BatchOut
    ) -> None:
        resp = client.post(
            f"/api/v1/inventory/batches/{batch_main.id}/adjust",
            json={"adjustment": -50, "reason": "Recount"},
            headers=auth(manager_token),
        )
        assert resp.status_code == 400
