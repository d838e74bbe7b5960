"""Point-in-time metrics snapshot supplied by a poller.

The snapshot is the input contract of the classifier. Fields mirror the
RabbitMQ Management API names so adapters can map responses directly;
derived percentages are exposed as properties and return ``None`` when
the underlying values are missing or unusable.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone


def usage_percent(used: float | None, total: float | None) -> float | None:
    """``used / total * 100``, or None if either side is unusable."""
    if used is None or total is None:
        return None
    if isinstance(used, bool) or isinstance(total, bool):
        return None
    if not isinstance(used, (int, float)) or not isinstance(total, (int, float)):
        return None
    if total <= 0 or used < 0:
        return None
    return used / total * 100


@dataclass
class NodeMetrics:
    """Resource usage of one broker node."""

    name: str
    running: bool = True
    mem_used: float | None = None
    mem_limit: float | None = None
    mem_alarm: bool = False
    disk_free: float | None = None
    disk_total: float | None = None
    disk_free_limit: float | None = None
    disk_free_alarm: bool = False
    fd_used: float | None = None
    fd_total: float | None = None
    sockets_used: float | None = None
    sockets_total: float | None = None
    proc_used: float | None = None
    proc_total: float | None = None
    run_queue: float | None = None
    partitions: list[str] = field(default_factory=list)

    @property
    def memory_percent(self) -> float | None:
        return usage_percent(self.mem_used, self.mem_limit)

    @property
    def disk_free_percent(self) -> float | None:
        """Free disk as a percentage.

        Uses ``disk_total`` when the source reports it. The Management API
        only reports the free-space alarm limit, so free space is otherwise
        taken relative to ``disk_free_limit``; values above 100 mean more
        space is free than the limit requires.
        """
        if self.disk_total is not None:
            return usage_percent(self.disk_free, self.disk_total)
        if not self.disk_free:
            return None
        return usage_percent(self.disk_free, self.disk_free_limit)


@dataclass
class QueueMetrics:
    """Depth and throughput of one queue."""

    name: str
    vhost: str = "/"
    messages: int | None = 0
    messages_ready: int | None = 0
    messages_unacknowledged: int | None = 0
    consumers: int | None = 0
    publish_rate: float | None = 0.0
    deliver_rate: float | None = 0.0
    idle_since: datetime | None = None

    @property
    def consumer_utilization(self) -> float | None:
        """Delivery rate as a percentage of publish rate.

        100 when nothing is being published; None without consumers.
        """
        if not self.consumers:
            return None
        publish = self.publish_rate or 0.0
        deliver = self.deliver_rate or 0.0
        if publish <= 0:
            return 100.0
        return deliver / publish * 100


@dataclass
class ClusterMetrics:
    """Cluster-wide aggregates."""

    name: str = "cluster"
    connection_count: int | None = None
    connection_limit: int | None = None


@dataclass
class MetricsSnapshot:
    """Everything polled from one server in one cycle.

    Attributes:
        server_id: Server the snapshot was taken from.
        server_name: Display name of the server.
        nodes: Per-node metrics.
        queues: Per-queue metrics.
        cluster: Cluster aggregates.
        vhost: Scope of ``queues`` (None = every vhost).
        collected_at: When the poll completed.
    """

    server_id: str
    server_name: str = ""
    nodes: list[NodeMetrics] = field(default_factory=list)
    queues: list[QueueMetrics] = field(default_factory=list)
    cluster: ClusterMetrics = field(default_factory=ClusterMetrics)
    vhost: str | None = None
    collected_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
