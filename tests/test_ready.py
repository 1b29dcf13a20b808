"""
Tests for /health and /ready endpoints.
"""
from __future__ import annotations

from unittest.mock import patch


def test_health_reports_pool_and_cache(app_client):
    _app, client = app_client
    res = client.get("/health")
    assert res.status_code == 200
    body = res.get_json()["data"]
    assert body["status"] == "ok"
    assert body["db_pool"]["initialized"] is True
    assert "hit_rate" in body["cache"]
    assert res.headers["X-Request-ID"]


def test_ready_ok(app_client):
    _app, client = app_client
    res = client.get("/ready")
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "ok"


def test_ready_db_down(app_client):
    """Test /ready returns 503 when the database is unreachable."""
    _app, client = app_client

    with patch("app.routes.core._ping_db", return_value=False):
        res = client.get("/ready")
    assert res.status_code == 503
    assert res.get_json()["error"]["code"] == "STORAGE_ERROR"


def test_unknown_route_is_json_404(app_client):
    _app, client = app_client
    res = client.get("/nope")
    assert res.status_code == 404
    assert res.get_json()["ok"] is False


def test_request_id_is_echoed(app_client):
    _app, client = app_client
    res = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert res.headers["X-Request-ID"] == "req-123"
