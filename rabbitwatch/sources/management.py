"""
RabbitMQ Management HTTP API metrics source.

Polls ``/api/overview``, ``/api/nodes`` and ``/api/queues`` and maps the
responses onto a ``MetricsSnapshot``. Any HTTP or decoding failure is
raised as ``MetricsUnavailableError`` so the detection cycle can skip
the server without touching its active alerts.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from rabbitwatch.alerts.collaborators import ServerInfo
from rabbitwatch.alerts.errors import MetricsUnavailableError
from rabbitwatch.alerts.snapshot import (
    ClusterMetrics,
    MetricsSnapshot,
    NodeMetrics,
    QueueMetrics,
)

logger = logging.getLogger(__name__)

# Management API reports idle_since as "2024-01-15 10:30:00" (UTC)
_IDLE_SINCE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S")


def parse_idle_since(value: str | None) -> datetime | None:
    if not value:
        return None
    for fmt in _IDLE_SINCE_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable idle_since value: %r", value)
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _rate(stats: dict[str, Any] | None, key: str) -> float:
    details = (stats or {}).get(key) or {}
    rate = details.get("rate", 0.0)
    return float(rate) if isinstance(rate, (int, float)) else 0.0


def node_from_api(data: dict[str, Any]) -> NodeMetrics:
    """Map one ``/api/nodes`` entry to NodeMetrics."""
    return NodeMetrics(
        name=data.get("name", "unknown"),
        running=bool(data.get("running", False)),
        mem_used=data.get("mem_used"),
        mem_limit=data.get("mem_limit"),
        mem_alarm=bool(data.get("mem_alarm", False)),
        disk_free=data.get("disk_free"),
        disk_total=data.get("disk_total"),
        disk_free_limit=data.get("disk_free_limit"),
        disk_free_alarm=bool(data.get("disk_free_alarm", False)),
        fd_used=data.get("fd_used"),
        fd_total=data.get("fd_total"),
        sockets_used=data.get("sockets_used"),
        sockets_total=data.get("sockets_total"),
        proc_used=data.get("proc_used"),
        proc_total=data.get("proc_total"),
        run_queue=data.get("run_queue"),
        partitions=list(data.get("partitions") or []),
    )


def queue_from_api(data: dict[str, Any]) -> QueueMetrics:
    """Map one ``/api/queues`` entry to QueueMetrics."""
    stats = data.get("message_stats")
    return QueueMetrics(
        name=data.get("name", ""),
        vhost=data.get("vhost", "/"),
        messages=data.get("messages", 0),
        messages_ready=data.get("messages_ready", 0),
        messages_unacknowledged=data.get("messages_unacknowledged", 0),
        consumers=data.get("consumers", 0),
        publish_rate=_rate(stats, "publish_details"),
        deliver_rate=_rate(stats, "deliver_get_details"),
        idle_since=parse_idle_since(data.get("idle_since")),
    )


def cluster_from_api(overview: dict[str, Any], nodes: list[NodeMetrics]) -> ClusterMetrics:
    """Cluster aggregates.

    The connection limit is the sum of the nodes' socket limits, which
    is what bounds client connections on the broker.
    """
    totals = overview.get("object_totals") or {}
    limits = [n.sockets_total for n in nodes if isinstance(n.sockets_total, (int, float))]
    return ClusterMetrics(
        name=overview.get("cluster_name") or "cluster",
        connection_count=totals.get("connections"),
        connection_limit=int(sum(limits)) if limits else None,
    )


class ManagementApiSource:
    """
    Metrics source backed by the RabbitMQ Management HTTP API.

    Creates a new ``httpx.AsyncClient`` per poll (short-lived, no pooling).
    Servers without their own ``management_url`` fall back to the default
    URL and credentials this source was created with.
    """

    def __init__(
        self,
        default_url: str | None = None,
        username: str = "guest",
        password: str = "guest",
        timeout: float = 10.0,
    ) -> None:
        self._default_url = default_url
        self._username = username
        self._password = password
        self._timeout = timeout

    def _connection(self, server: ServerInfo) -> tuple[str, httpx.BasicAuth]:
        url = server.management_url or self._default_url
        if not url:
            raise MetricsUnavailableError(
                f"No management URL configured for server {server.id}"
            )
        if server.management_url:
            auth = httpx.BasicAuth(server.username, server.password)
        else:
            auth = httpx.BasicAuth(self._username, self._password)
        return url.rstrip("/"), auth

    async def _get(self, client: httpx.AsyncClient, path: str) -> Any:
        try:
            resp = await client.get(path)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise MetricsUnavailableError(
                f"Management API returned {e.response.status_code} for {path}"
            ) from e
        except httpx.TimeoutException as e:
            raise MetricsUnavailableError(
                f"Management API timed out after {self._timeout}s for {path}"
            ) from e
        except httpx.HTTPError as e:
            raise MetricsUnavailableError(f"Management API request failed: {e}") from e
        except ValueError as e:
            raise MetricsUnavailableError(f"Invalid JSON from {path}") from e

    async def ping(self, server: ServerInfo) -> None:
        base_url, auth = self._connection(server)
        async with httpx.AsyncClient(base_url=base_url, auth=auth, timeout=self._timeout) as client:
            await self._get(client, "/api/overview")

    async def fetch_snapshot(
        self,
        server: ServerInfo,
        vhost: str | None = None,
    ) -> MetricsSnapshot:
        """
        Poll overview, nodes and queues of a server.

        Args:
            server: Server to poll.
            vhost: Only fetch queues of this virtual host.

        Returns:
            MetricsSnapshot of the server.

        Raises:
            MetricsUnavailableError: If any request fails.
        """
        base_url, auth = self._connection(server)
        queues_path = (
            f"/api/queues/{quote(vhost, safe='')}" if vhost is not None else "/api/queues"
        )

        async with httpx.AsyncClient(base_url=base_url, auth=auth, timeout=self._timeout) as client:
            overview, nodes_data, queues_data = await asyncio.gather(
                self._get(client, "/api/overview"),
                self._get(client, "/api/nodes"),
                self._get(client, queues_path),
            )

        if not isinstance(nodes_data, list) or not isinstance(queues_data, list):
            raise MetricsUnavailableError(
                f"Unexpected Management API response shape for server {server.id}"
            )

        nodes = [node_from_api(n) for n in nodes_data]
        snapshot = MetricsSnapshot(
            server_id=server.id,
            server_name=server.name,
            nodes=nodes,
            queues=[queue_from_api(q) for q in queues_data],
            cluster=cluster_from_api(overview if isinstance(overview, dict) else {}, nodes),
            vhost=vhost,
        )
        logger.debug(
            "Polled server %s: %d nodes, %d queues",
            server.id, len(snapshot.nodes), len(snapshot.queues),
        )
        return snapshot
