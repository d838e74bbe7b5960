"""Shared fixtures for API tests."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from rabbitwatch.alerts.collaborators import StaticMetricsSource
from rabbitwatch.api.app import create_app
from rabbitwatch.api.auth import verify_api_key
from rabbitwatch.api.dependencies import (
    build_components,
    get_alert_monitor,
    get_alert_service,
    get_directory,
    get_query_service,
    get_settings_store,
    get_threshold_store,
)
from tests.conftest import GB, make_node, make_queue, make_snapshot


def hot_snapshot():
    """Memory critical on one node, one deep queue in prod, one in staging."""
    return make_snapshot(
        nodes=[make_node(mem_used=92 * GB, mem_limit=100 * GB)],
        queues=[
            make_queue("orders", vhost="prod", messages=20_000),
            make_queue("orders", vhost="staging", messages=60_000),
        ],
    )


@pytest.fixture
def metrics_source():
    return StaticMetricsSource({"srv-1": hot_snapshot()})


@pytest.fixture
def components(test_settings, directory, metrics_source):
    """Wired components over the in-memory directory and static metrics."""
    return build_components(
        settings=test_settings,
        directory=directory,
        metrics_source=metrics_source,
    )


@pytest.fixture
def seeded(components, server):
    """Run one detection cycle so the server has active alerts."""

    async def _run():
        result = await components.alert_service.run_check(server)
        await components.alert_service.drain()
        return result

    return asyncio.run(_run())


@pytest.fixture
def client(components):
    """FastAPI TestClient with dependency overrides."""
    app = create_app()

    app.dependency_overrides[verify_api_key] = lambda: "test-key"
    app.dependency_overrides[get_directory] = lambda: components.directory
    app.dependency_overrides[get_threshold_store] = lambda: components.threshold_store
    app.dependency_overrides[get_settings_store] = lambda: components.settings_store
    app.dependency_overrides[get_query_service] = lambda: components.query_service
    app.dependency_overrides[get_alert_service] = lambda: components.alert_service
    app.dependency_overrides[get_alert_monitor] = lambda: components.monitor

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
