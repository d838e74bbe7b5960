"""Pytest fixtures for rabbitwatch tests."""

from datetime import datetime, timezone

import pytest

from rabbitwatch.alerts.collaborators import InMemoryDirectory, ServerInfo, WorkspaceInfo
from rabbitwatch.alerts.schemas import Alert, AlertDetails, AlertSource
from rabbitwatch.alerts.snapshot import ClusterMetrics, MetricsSnapshot, NodeMetrics, QueueMetrics
from rabbitwatch.alerts.thresholds import DEFAULT_THRESHOLDS, ThresholdSet
from rabbitwatch.config.settings import Settings

COLLECTED_AT = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)

GB = 1024 ** 3


def make_node(name: str = "rabbit@node1", **kwargs) -> NodeMetrics:
    """Healthy node: 40% memory, 50% disk free, low fd/socket/process use."""
    defaults = dict(
        running=True,
        mem_used=4 * GB,
        mem_limit=10 * GB,
        disk_free=50 * GB,
        disk_total=100 * GB,
        fd_used=100,
        fd_total=1000,
        sockets_used=50,
        sockets_total=1000,
        proc_used=1000,
        proc_total=100_000,
        run_queue=0,
    )
    defaults.update(kwargs)
    return NodeMetrics(name=name, **defaults)


def make_queue(name: str = "orders", vhost: str = "/", **kwargs) -> QueueMetrics:
    """Healthy queue: a few messages, one consumer keeping up."""
    defaults = dict(
        messages=10,
        messages_ready=5,
        messages_unacknowledged=5,
        consumers=1,
        publish_rate=10.0,
        deliver_rate=10.0,
    )
    defaults.update(kwargs)
    return QueueMetrics(name=name, vhost=vhost, **defaults)


def make_snapshot(
    nodes: list[NodeMetrics] | None = None,
    queues: list[QueueMetrics] | None = None,
    server_id: str = "srv-1",
    **kwargs,
) -> MetricsSnapshot:
    return MetricsSnapshot(
        server_id=server_id,
        server_name=kwargs.pop("server_name", "production"),
        nodes=nodes if nodes is not None else [make_node()],
        queues=queues if queues is not None else [make_queue()],
        cluster=kwargs.pop(
            "cluster", ClusterMetrics(name="rabbit@cluster", connection_count=10, connection_limit=1000),
        ),
        collected_at=kwargs.pop("collected_at", COLLECTED_AT),
        **kwargs,
    )


def make_alert(
    name: str = "rabbit@node1",
    category: str = "memory",
    severity: str = "warning",
    source_type: str = "node",
    server_id: str = "srv-1",
    **kwargs,
) -> Alert:
    """Helper to create an Alert with sensible defaults."""
    return Alert(
        server_id=server_id,
        server_name=kwargs.pop("server_name", "production"),
        severity=severity,
        category=category,
        title=kwargs.pop("title", "High Memory Usage"),
        description=kwargs.pop("description", f"Memory usage is 85.0% on node {name}"),
        source=AlertSource(type=source_type, name=name),
        details=kwargs.pop(
            "details", AlertDetails(current=85, threshold=80, affected=[name]),
        ),
        timestamp=kwargs.pop("timestamp", COLLECTED_AT),
        **kwargs,
    )


@pytest.fixture
def thresholds() -> ThresholdSet:
    return DEFAULT_THRESHOLDS


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        environment="development",
        log_level="DEBUG",
        frontend_url="https://app.rabbitwatch.test",
        smtp_host="smtp.rabbitwatch.test",
        smtp_user="alerts",
        smtp_password="secret",
    )


@pytest.fixture
def server() -> ServerInfo:
    return ServerInfo(id="srv-1", name="production", workspace_id="ws-1")


@pytest.fixture
def directory(server) -> InMemoryDirectory:
    """Workspace ws-1 owned by user-1 on a paid plan, with one server."""
    directory = InMemoryDirectory()
    directory.add_workspace(
        WorkspaceInfo(id="ws-1", name="Acme", owner_id="user-1"),
        owner_plan="DEVELOPER",
    )
    directory.add_server(server)
    return directory
