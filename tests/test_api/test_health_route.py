"""Tests for the service liveness endpoint and API key handling."""

from fastapi.testclient import TestClient

from rabbitwatch import __version__
from rabbitwatch.api.app import create_app
from rabbitwatch.api.dependencies import get_alert_monitor, get_directory
from rabbitwatch.config.settings import get_settings


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["version"] == __version__
    assert data["monitor_running"] is False
    assert data["servers"] == 1


def test_request_id_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_root(client):
    assert client.get("/").json()["service"] == "RabbitWatch Alerting API"


def test_api_key_required_when_configured(components, monkeypatch):
    monkeypatch.setenv("API_KEYS", "secret-key")
    get_settings.cache_clear()
    app = create_app()
    app.dependency_overrides[get_directory] = lambda: components.directory
    app.dependency_overrides[get_alert_monitor] = lambda: components.monitor

    try:
        with TestClient(app) as c:
            assert c.get("/workspaces/ws-1/thresholds").status_code == 401
            assert c.get(
                "/workspaces/ws-1/thresholds", headers={"X-API-KEY": "wrong"},
            ).status_code == 401
            # liveness stays open
            assert c.get("/health").status_code == 200
    finally:
        app.dependency_overrides.clear()
        get_settings.cache_clear()
