from __future__ import annotations

from fastapi.testclient import TestClient


class TestApp:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_request_id_generated(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert len(resp.headers["X-Request-ID"]) == 32

    def test_request_id_echoed(self, client: TestClient) -> None:
        resp = client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["X-Request-ID"] == "abc-123"
