"""Tests for the RabbitMQ Management API metrics source."""

import base64
from datetime import datetime, timezone

import httpx
import pytest
import respx

from rabbitwatch.alerts.collaborators import ServerInfo
from rabbitwatch.alerts.errors import MetricsUnavailableError
from rabbitwatch.alerts.thresholds import DEFAULT_THRESHOLDS
from rabbitwatch.alerts.triggers import classify
from rabbitwatch.sources.management import (
    ManagementApiSource,
    cluster_from_api,
    node_from_api,
    parse_idle_since,
    queue_from_api,
)

BASE = "http://rabbit.test:15672"

NODE = {
    "name": "rabbit@node1",
    "running": True,
    "mem_used": 900,
    "mem_limit": 1000,
    "mem_alarm": False,
    "disk_free": 60_000_000_000,
    "disk_free_limit": 50_000_000,
    "disk_free_alarm": False,
    "fd_used": 10,
    "fd_total": 100,
    "sockets_used": 5,
    "sockets_total": 500,
    "proc_used": 300,
    "proc_total": 1000,
    "run_queue": 1,
    "partitions": [],
}

QUEUE = {
    "name": "orders",
    "vhost": "prod",
    "messages": 20,
    "messages_ready": 15,
    "messages_unacknowledged": 5,
    "consumers": 2,
    "idle_since": "2026-03-10 08:00:00",
    "message_stats": {
        "publish_details": {"rate": 12.5},
        "deliver_get_details": {"rate": 10.0},
    },
}

OVERVIEW = {"cluster_name": "rabbit@prod", "object_totals": {"connections": 42}}


def _mock_api(queues_path: str = "/api/queues", **overrides):
    responses = {
        "/api/overview": httpx.Response(200, json=OVERVIEW),
        "/api/nodes": httpx.Response(200, json=[NODE]),
        queues_path: httpx.Response(200, json=[QUEUE]),
    }
    responses.update(overrides)
    return {path: respx.get(f"{BASE}{path}").mock(return_value=resp) for path, resp in responses.items()}


class TestParseIdleSince:
    def test_management_format(self):
        assert parse_idle_since("2026-03-10 08:00:00") == datetime(2026, 3, 10, 8, tzinfo=timezone.utc)

    def test_iso_with_zone(self):
        assert parse_idle_since("2026-03-10T08:00:00Z") == datetime(2026, 3, 10, 8, tzinfo=timezone.utc)

    def test_missing(self):
        assert parse_idle_since(None) is None
        assert parse_idle_since("") is None

    def test_garbage(self):
        assert parse_idle_since("last tuesday") is None


class TestMapping:
    def test_node(self):
        node = node_from_api(NODE)
        assert node.name == "rabbit@node1"
        assert node.memory_percent == 90.0
        assert node.disk_total is None
        assert node.disk_free_percent == 120_000.0

    def test_node_missing_fields(self):
        node = node_from_api({"name": "rabbit@bare"})
        assert node.running is False
        assert node.memory_percent is None
        assert node.partitions == []

    def test_queue_rates(self):
        queue = queue_from_api(QUEUE)
        assert queue.publish_rate == 12.5
        assert queue.deliver_rate == 10.0
        assert queue.consumer_utilization == 80.0
        assert queue.idle_since == datetime(2026, 3, 10, 8, tzinfo=timezone.utc)

    def test_queue_without_stats(self):
        queue = queue_from_api({"name": "empty", "vhost": "/"})
        assert queue.publish_rate == 0.0
        assert queue.messages == 0

    def test_cluster_limit_sums_socket_limits(self):
        nodes = [node_from_api(NODE), node_from_api({**NODE, "name": "rabbit@node2"})]
        cluster = cluster_from_api(OVERVIEW, nodes)

        assert cluster.name == "rabbit@prod"
        assert cluster.connection_count == 42
        assert cluster.connection_limit == 1000

    def test_cluster_limit_unknown(self):
        cluster = cluster_from_api({}, [node_from_api({"name": "n"})])
        assert cluster.connection_limit is None
        assert cluster.name == "cluster"


class TestManagementApiSource:
    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_snapshot(self, server):
        routes = _mock_api()
        source = ManagementApiSource(default_url=BASE, username="monitor", password="pw")

        snapshot = await source.fetch_snapshot(server)

        assert snapshot.server_id == "srv-1"
        assert snapshot.server_name == "production"
        assert [n.name for n in snapshot.nodes] == ["rabbit@node1"]
        assert [q.name for q in snapshot.queues] == ["orders"]
        assert snapshot.cluster.connection_count == 42
        assert snapshot.vhost is None
        auth = routes["/api/nodes"].calls.last.request.headers["Authorization"]
        assert auth == "Basic " + base64.b64encode(b"monitor:pw").decode()

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_snapshot_for_vhost(self, server):
        routes = _mock_api(queues_path="/api/queues/prod")
        source = ManagementApiSource(default_url=BASE)

        snapshot = await source.fetch_snapshot(server, vhost="prod")

        assert snapshot.vhost == "prod"
        assert routes["/api/queues/prod"].called

    @pytest.mark.asyncio
    @respx.mock
    async def test_low_disk_node_classified(self, server):
        low_disk = {**NODE, "disk_free": 4_000_000}
        _mock_api(**{"/api/nodes": httpx.Response(200, json=[low_disk])})
        source = ManagementApiSource(default_url=BASE)

        snapshot = await source.fetch_snapshot(server)
        alerts = classify(snapshot, DEFAULT_THRESHOLDS)

        disk = [a for a in alerts if a.category == "disk"]
        assert len(disk) == 1
        assert disk[0].severity == "critical"
        assert disk[0].details.current == 8
        assert disk[0].source.name == "rabbit@node1"

    @pytest.mark.asyncio
    @respx.mock
    async def test_server_url_overrides_default(self):
        respx.get("http://other.test:15672/api/overview").mock(
            return_value=httpx.Response(200, json=OVERVIEW)
        )
        server = ServerInfo(
            id="srv-2", name="other", workspace_id="ws-1",
            management_url="http://other.test:15672/",
        )

        await ManagementApiSource(default_url=BASE).ping(server)

    @pytest.mark.asyncio
    async def test_no_url_configured(self, server):
        with pytest.raises(MetricsUnavailableError, match="No management URL"):
            await ManagementApiSource().fetch_snapshot(server)

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_status(self, server):
        _mock_api(**{"/api/nodes": httpx.Response(401)})

        with pytest.raises(MetricsUnavailableError, match="401"):
            await ManagementApiSource(default_url=BASE).fetch_snapshot(server)

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout(self, server):
        respx.get(f"{BASE}/api/overview").mock(side_effect=httpx.ConnectTimeout("slow"))

        with pytest.raises(MetricsUnavailableError, match="timed out"):
            await ManagementApiSource(default_url=BASE).ping(server)

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_refused(self, server):
        respx.get(f"{BASE}/api/overview").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(MetricsUnavailableError):
            await ManagementApiSource(default_url=BASE).ping(server)

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_json(self, server):
        _mock_api(**{"/api/queues": httpx.Response(200, text="<html>")})

        with pytest.raises(MetricsUnavailableError, match="Invalid JSON"):
            await ManagementApiSource(default_url=BASE).fetch_snapshot(server)

    @pytest.mark.asyncio
    @respx.mock
    async def test_unexpected_shape(self, server):
        _mock_api(**{"/api/nodes": httpx.Response(200, json={"error": "nope"})})

        with pytest.raises(MetricsUnavailableError, match="response shape"):
            await ManagementApiSource(default_url=BASE).fetch_snapshot(server)
