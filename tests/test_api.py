"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from backend.app import main
from crawlguard.core.scanner import ScanResult


@pytest.fixture
def client(monkeypatch, tmp_path):
    started = []

    async def fake_run_scan(scan_id, settings, test_buttons=False):
        started.append((scan_id, settings, test_buttons))
        main.scans[scan_id]["status"] = "completed"
        main.scans[scan_id]["result"] = ScanResult()

    monkeypatch.setattr(main, "run_scan", fake_run_scan)
    monkeypatch.setattr(main, "scans", {})
    monkeypatch.setattr(main, "_event_queues", {})
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path / "runs"))

    test_client = TestClient(main.app)
    test_client.started = started
    return test_client


class TestScanEndpoints:
    """Tests for the scan endpoints."""

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"

    def test_start_scan(self, client):
        response = client.post("/api/v1/scan", json={"url": "x.com", "max_pages": 10, "workers": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["url"] == "https://x.com"
        scan_id, settings, _ = client.started[0]
        assert scan_id == body["scan_id"]
        assert settings.MAX_PAGES == 10
        assert settings.CRAWLER_WORKERS == 3
        assert settings.OUTPUT_DIR.endswith(scan_id)

    def test_get_completed_scan(self, client):
        scan_id = client.post("/api/v1/scan", json={"url": "https://x.com"}).json()["scan_id"]

        body = client.get(f"/api/v1/scan/{scan_id}").json()

        assert body["status"] == "completed"
        assert body["urls"] == []
        assert body["validation"] is None

    def test_list_scans(self, client):
        client.post("/api/v1/scan", json={"url": "https://x.com"})
        scans = client.get("/api/v1/scans").json()
        assert len(scans) == 1
        assert scans[0]["url"] == "https://x.com"

    def test_unknown_scan(self, client):
        assert client.get("/api/v1/scan/nope").status_code == 404
        assert client.get("/api/v1/scan/nope/stream").status_code == 404

    def test_rejects_invalid_limits(self, client):
        assert client.post("/api/v1/scan", json={"url": "https://x.com", "max_pages": 0}).status_code == 422

    def test_rejects_auth_without_credentials(self, client, monkeypatch):
        monkeypatch.setenv("REQUIRE_AUTH", "true")
        response = client.post("/api/v1/scan", json={"url": "https://x.com"})
        assert response.status_code == 422
        assert "AUTH_EMAIL" in response.json()["detail"]
        assert client.started == []
