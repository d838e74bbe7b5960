"""Direct health probe of a server.

Independent of the alert collection: the probe polls the broker
through the metrics source and grades five fixed components
(connectivity, nodes, memory, disk, queues) against the workspace
thresholds.
"""

import logging
from datetime import datetime, timezone

from rabbitwatch.alerts.collaborators import MetricsSource, ServerInfo
from rabbitwatch.alerts.errors import MetricsUnavailableError
from rabbitwatch.alerts.schemas import ComponentCheck, HealthCheck
from rabbitwatch.alerts.snapshot import MetricsSnapshot
from rabbitwatch.alerts.thresholds import ThresholdSet, ThresholdStore

logger = logging.getLogger(__name__)


def _check_nodes(snapshot: MetricsSnapshot) -> ComponentCheck:
    total = len(snapshot.nodes)
    running = sum(1 for node in snapshot.nodes if node.running)
    details = {
        "running": running,
        "total": total,
        "nodes": [
            {
                "name": node.name,
                "running": node.running,
                "mem_alarm": node.mem_alarm,
                "disk_free_alarm": node.disk_free_alarm,
            }
            for node in snapshot.nodes
        ],
    }

    if running == total:
        return ComponentCheck("healthy", f"All {total} nodes are running", details)
    if running > 0:
        return ComponentCheck("warning", f"{running}/{total} nodes are running", details)
    return ComponentCheck("critical", "No nodes are running", details)


def _check_memory(snapshot: MetricsSnapshot, thresholds: ThresholdSet) -> ComponentCheck:
    alarms = [node.name for node in snapshot.nodes if node.mem_alarm]
    if alarms:
        return ComponentCheck(
            "critical",
            f"{len(alarms)} nodes have memory alarms",
            {"nodes": alarms},
        )

    high = [
        node.name
        for node in snapshot.nodes
        if node.memory_percent is not None
        and node.memory_percent >= thresholds.memory.warning
    ]
    if high:
        return ComponentCheck(
            "warning",
            f"{len(high)} nodes have high memory usage",
            {"nodes": high},
        )
    return ComponentCheck("healthy", "Memory usage is normal across all nodes")


def _check_disk(snapshot: MetricsSnapshot, thresholds: ThresholdSet) -> ComponentCheck:
    alarms = [node.name for node in snapshot.nodes if node.disk_free_alarm]
    if alarms:
        return ComponentCheck(
            "critical",
            f"{len(alarms)} nodes have disk space alarms",
            {"nodes": alarms},
        )

    low = [
        node.name
        for node in snapshot.nodes
        if node.disk_free_percent is not None
        and node.disk_free_percent <= thresholds.disk.warning
    ]
    if low:
        return ComponentCheck(
            "warning",
            f"{len(low)} nodes are low on disk space",
            {"nodes": low},
        )
    return ComponentCheck("healthy", "Disk space is sufficient across all nodes")


def _check_queues(snapshot: MetricsSnapshot, thresholds: ThresholdSet) -> ComponentCheck:
    critical = warning = without_consumers = 0

    for queue in snapshot.queues:
        messages = queue.messages or 0
        unacked = queue.messages_unacknowledged or 0

        for value, bound in (
            (messages, thresholds.queue_messages),
            (unacked, thresholds.unacked_messages),
        ):
            if bound.critical is not None and value >= bound.critical:
                critical += 1
            elif value >= bound.warning:
                warning += 1

        if messages > 0 and not queue.consumers:
            without_consumers += 1

    details = {
        "total": len(snapshot.queues),
        "critical": critical,
        "warning": warning,
        "without_consumers": without_consumers,
    }

    if critical:
        return ComponentCheck("critical", f"{critical} queues have critical issues", details)
    if warning or without_consumers:
        issues = []
        if warning:
            issues.append(f"{warning} queues with high message count")
        if without_consumers:
            issues.append(f"{without_consumers} queues without consumers")
        return ComponentCheck("warning", ", ".join(issues), details)
    return ComponentCheck(
        "healthy", f"All {len(snapshot.queues)} queues are healthy", details,
    )


def evaluate_health(snapshot: MetricsSnapshot, thresholds: ThresholdSet) -> HealthCheck:
    """Grade nodes, memory, disk and queues of a polled snapshot.

    Connectivity is reported healthy since a snapshot was obtained.
    """
    return HealthCheck(
        checks={
            "connectivity": ComponentCheck(
                "healthy", "Successfully connected to RabbitMQ",
            ),
            "nodes": _check_nodes(snapshot),
            "memory": _check_memory(snapshot, thresholds),
            "disk": _check_disk(snapshot, thresholds),
            "queues": _check_queues(snapshot, thresholds),
        },
        timestamp=snapshot.collected_at,
    )


class HealthChecker:
    """Probes servers through a MetricsSource."""

    def __init__(self, metrics_source: MetricsSource, threshold_store: ThresholdStore) -> None:
        self._source = metrics_source
        self._thresholds = threshold_store

    async def get_health_check(self, server: ServerInfo) -> HealthCheck:
        """Probe a server and grade each component.

        A failed probe never raises: an unreachable broker marks
        connectivity critical, and a failed poll marks the components
        that depend on it critical.

        Args:
            server: Server to probe.

        Returns:
            HealthCheck with all five components populated.
        """
        thresholds = await self._thresholds.get_thresholds(server.workspace_id)
        now = datetime.now(timezone.utc)

        connectivity = ComponentCheck("healthy", "Successfully connected to RabbitMQ")
        try:
            await self._source.ping(server)
        except MetricsUnavailableError as e:
            logger.warning("Health probe could not reach server %s: %s", server.id, e)
            connectivity = ComponentCheck("critical", f"Failed to connect: {e}")

        try:
            snapshot = await self._source.fetch_snapshot(server)
        except MetricsUnavailableError as e:
            logger.warning("Health probe could not poll server %s: %s", server.id, e)
            failed = {
                name: ComponentCheck("critical", f"Failed to check {name}: {e}")
                for name in ("nodes", "memory", "disk", "queues")
            }
            return HealthCheck(
                checks={"connectivity": connectivity, **failed},
                timestamp=now,
            )

        health = evaluate_health(snapshot, thresholds)
        health.checks["connectivity"] = connectivity
        health.timestamp = now
        return health
