"""
tests/integration/test_health_routes.py

Integration tests for routes/health_routes.py.
Uses FastAPI's TestClient as a context manager so the lifespan starts and stops
the InstanceManager for each test. Records are scheduled once a year so no
reconciliation pass runs while a test is in progress.
"""

from __future__ import annotations

from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from app import create_app
from dependencies import get_manager

_YEARLY = "0 0 1 1 *"


def test_ping_returns_pong(make_spec):
    """GET /ping must answer the plain-text body "pong"."""
    with TestClient(create_app([make_spec(cron=_YEARLY)])) as client:
        response = client.get("/ping")
    assert response.status_code == 200
    assert response.text == "pong"
    assert response.headers["content-type"].startswith("text/plain")


def test_health_lists_scheduled_records(make_spec):
    """GET /health must report status ok plus one entry per record."""
    specs = [
        make_spec(name="home-v4", cron=_YEARLY),
        make_spec(name="www-v4", subdomain="www", cron=_YEARLY),
    ]
    with TestClient(create_app(specs)) as client:
        response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    records = {record["name"]: record for record in body["records"]}
    assert records["www-v4"]["fqdn"] == "www.example.com"
    assert records["home-v4"]["state"] == "idle"
    assert records["home-v4"]["next_run"] is not None


def test_health_uses_injected_manager(make_spec):
    """The manager dependency can be overridden like any other Depends()."""
    fake = MagicMock()
    fake.status.return_value = [{"name": "fake"}]
    app = create_app([make_spec(cron=_YEARLY)])
    app.dependency_overrides[get_manager] = lambda: fake

    with TestClient(app) as client:
        response = client.get("/health")

    assert response.json() == {"status": "ok", "records": [{"name": "fake"}]}


def test_lifespan_stops_manager_on_exit(make_spec):
    app = create_app([make_spec(cron=_YEARLY)])
    with TestClient(app):
        manager = app.state.manager
        assert manager.scheduler.running
        # Routes reach shared state only through the manager.
        assert not hasattr(app.state, "http_client")
    assert not manager.scheduler.running
