"""Stateless trigger functions for alert detection.

Each function checks a single condition on one node, queue, or the
cluster and returns an Alert if the condition is met, or None otherwise.
No I/O, no state: lifecycle tracking, persistence and notification live
in the lifecycle tracker and AlertService.

``classify`` runs every trigger over a snapshot and collapses candidates
that share an identity key, keeping the most severe.
"""

import logging
import math
from datetime import timedelta, timezone

from rabbitwatch.alerts.schemas import SEVERITY_RANK, Alert, AlertDetails, AlertSource
from rabbitwatch.alerts.snapshot import (
    MetricsSnapshot,
    NodeMetrics,
    QueueMetrics,
    usage_percent,
)
from rabbitwatch.alerts.thresholds import MetricThreshold, ThresholdSet

logger = logging.getLogger(__name__)

STALE_READY_MESSAGES = 100
ACCUMULATION_RATIO = 0.5
ACCUMULATION_MIN_MESSAGES = 1000
INACTIVE_AFTER = timedelta(hours=24)


def _crossed(
    value: float,
    bound: MetricThreshold,
    lower_is_worse: bool = False,
) -> tuple[str, float] | None:
    """Return (severity, crossed bound) or None if the value is fine."""
    def worse(limit: float) -> bool:
        return value <= limit if lower_is_worse else value >= limit

    if bound.critical is not None and worse(bound.critical):
        return "critical", bound.critical
    if worse(bound.warning):
        return "warning", bound.warning
    return None


def _percent(
    used: float | None,
    total: float | None,
    metric: str,
    source: str,
) -> float | None:
    percent = usage_percent(used, total)
    if percent is None and used is not None and total is not None:
        logger.warning(
            "Skipping %s check for %s: unusable values used=%r total=%r",
            metric, source, used, total,
        )
    return percent


def _count(value: float | None, metric: str, source: str) -> float | None:
    if value is None:
        return None
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or not math.isfinite(value)
        or value < 0
    ):
        logger.warning(
            "Skipping %s check for %s: unusable value %r", metric, source, value,
        )
        return None
    return value


def _node_alert(
    snapshot: MetricsSnapshot,
    node: NodeMetrics,
    severity: str,
    category: str,
    title: str,
    description: str,
    details: AlertDetails,
) -> Alert:
    return Alert(
        server_id=snapshot.server_id,
        server_name=snapshot.server_name,
        severity=severity,
        category=category,
        title=title,
        description=description,
        source=AlertSource(type="node", name=node.name),
        details=details,
        timestamp=snapshot.collected_at,
    )


def _queue_alert(
    snapshot: MetricsSnapshot,
    queue: QueueMetrics,
    severity: str,
    category: str,
    title: str,
    description: str,
    details: AlertDetails,
) -> Alert:
    return Alert(
        server_id=snapshot.server_id,
        server_name=snapshot.server_name,
        severity=severity,
        category=category,
        title=title,
        description=description,
        source=AlertSource(type="queue", name=queue.name),
        details=details,
        vhost=queue.vhost,
        timestamp=snapshot.collected_at,
    )


# Node triggers


def check_node_running(snapshot: MetricsSnapshot, node: NodeMetrics) -> Alert | None:
    """Critical alert for a node that is not running."""
    if node.running:
        return None
    return _node_alert(
        snapshot, node, "critical", "node",
        title="Node Down",
        description=f"RabbitMQ node {node.name} is not running",
        details=AlertDetails(
            current="stopped",
            recommended="Check node status and restart if necessary",
            affected=[node.name],
        ),
    )


def check_memory_alarm(snapshot: MetricsSnapshot, node: NodeMetrics) -> Alert | None:
    """Critical alert while the broker's memory alarm is raised."""
    if not node.mem_alarm:
        return None
    return _node_alert(
        snapshot, node, "critical", "memory",
        title="Memory Alarm Active",
        description=(
            f"Memory alarm is active on node {node.name}; "
            f"publishers are being blocked"
        ),
        details=AlertDetails(
            current="alarm",
            recommended="Free memory immediately or raise the memory high watermark",
            affected=[node.name],
        ),
    )


def check_disk_alarm(snapshot: MetricsSnapshot, node: NodeMetrics) -> Alert | None:
    """Critical alert while the broker's disk alarm is raised."""
    if not node.disk_free_alarm:
        return None
    return _node_alert(
        snapshot, node, "critical", "disk",
        title="Disk Alarm Active",
        description=(
            f"Disk space alarm is active on node {node.name}; "
            f"publishers are being blocked"
        ),
        details=AlertDetails(
            current="alarm",
            recommended="Free disk space immediately",
            affected=[node.name],
        ),
    )


def check_network_partitions(snapshot: MetricsSnapshot, node: NodeMetrics) -> Alert | None:
    """Critical alert when a node reports network partitions."""
    if not node.partitions:
        return None
    return _node_alert(
        snapshot, node, "critical", "node",
        title="Network Partition Detected",
        description=(
            f"Node {node.name} is partitioned from: {', '.join(node.partitions)}"
        ),
        details=AlertDetails(
            current=len(node.partitions),
            recommended="Resolve the partition and restart the affected nodes",
            affected=list(node.partitions),
        ),
    )


def check_memory_usage(
    snapshot: MetricsSnapshot,
    node: NodeMetrics,
    thresholds: ThresholdSet,
) -> Alert | None:
    """Check memory used as a percentage of the memory high watermark.

    Args:
        snapshot: Snapshot being classified.
        node: Node being checked.
        thresholds: Workspace thresholds.

    Returns:
        Alert or None.
    """
    percent = _percent(node.mem_used, node.mem_limit, "memory", node.name)
    if percent is None:
        return None

    crossed = _crossed(percent, thresholds.memory)
    if crossed is None:
        return None
    severity, threshold = crossed

    recommended = (
        "Consider scaling or optimizing memory usage"
        if severity == "critical"
        else "Monitor memory usage trends"
    )
    return _node_alert(
        snapshot, node, severity, "memory",
        title="High Memory Usage",
        description=f"Memory usage is {percent:.1f}% on node {node.name}",
        details=AlertDetails(
            current=round(percent),
            threshold=threshold,
            recommended=recommended,
            affected=[node.name],
        ),
    )


def check_disk_space(
    snapshot: MetricsSnapshot,
    node: NodeMetrics,
    thresholds: ThresholdSet,
) -> Alert | None:
    """Check free disk space (lower is worse).

    The percentage is taken against ``disk_total`` when reported, else
    against ``disk_free_limit``. Nodes reporting neither are skipped.
    """
    free_percent = node.disk_free_percent
    if free_percent is None:
        total = node.disk_total if node.disk_total is not None else node.disk_free_limit
        if node.disk_free and total is not None:
            logger.warning(
                "Skipping disk check for %s: unusable values free=%r total=%r",
                node.name, node.disk_free, total,
            )
        return None

    crossed = _crossed(free_percent, thresholds.disk, lower_is_worse=True)
    if crossed is None:
        return None
    severity, threshold = crossed

    recommended = (
        "Free up disk space immediately"
        if severity == "critical"
        else "Plan disk cleanup or expansion"
    )
    return _node_alert(
        snapshot, node, severity, "disk",
        title="Low Disk Space",
        description=f"Only {free_percent:.1f}% disk space free on node {node.name}",
        details=AlertDetails(
            current=round(free_percent),
            threshold=threshold,
            recommended=recommended,
            affected=[node.name],
        ),
    )


def check_file_descriptors(
    snapshot: MetricsSnapshot,
    node: NodeMetrics,
    thresholds: ThresholdSet,
) -> Alert | None:
    percent = _percent(node.fd_used, node.fd_total, "file_descriptors", node.name)
    if percent is None:
        return None

    crossed = _crossed(percent, thresholds.file_descriptors)
    if crossed is None:
        return None
    severity, threshold = crossed

    return _node_alert(
        snapshot, node, severity, "connection",
        title="High File Descriptor Usage",
        description=f"File descriptor usage is {percent:.1f}% on node {node.name}",
        details=AlertDetails(
            current=round(percent),
            threshold=threshold,
            recommended="Increase the file descriptor ulimit or reduce connections",
            affected=[node.name],
        ),
    )


def check_sockets(
    snapshot: MetricsSnapshot,
    node: NodeMetrics,
    thresholds: ThresholdSet,
) -> Alert | None:
    percent = _percent(node.sockets_used, node.sockets_total, "sockets", node.name)
    if percent is None:
        return None

    crossed = _crossed(percent, thresholds.sockets)
    if crossed is None:
        return None
    severity, threshold = crossed

    return _node_alert(
        snapshot, node, severity, "connection",
        title="High Socket Usage",
        description=f"Socket usage is {percent:.1f}% on node {node.name}",
        details=AlertDetails(
            current=round(percent),
            threshold=threshold,
            recommended="Review connection pooling and close idle connections",
            affected=[node.name],
        ),
    )


def check_processes(
    snapshot: MetricsSnapshot,
    node: NodeMetrics,
    thresholds: ThresholdSet,
) -> Alert | None:
    percent = _percent(node.proc_used, node.proc_total, "processes", node.name)
    if percent is None:
        return None

    crossed = _crossed(percent, thresholds.processes)
    if crossed is None:
        return None
    severity, threshold = crossed

    return _node_alert(
        snapshot, node, severity, "performance",
        title="High Erlang Process Usage",
        description=f"Erlang process usage is {percent:.1f}% on node {node.name}",
        details=AlertDetails(
            current=round(percent),
            threshold=threshold,
            recommended="Investigate process leaks or raise the process limit",
            affected=[node.name],
        ),
    )


def check_run_queue(
    snapshot: MetricsSnapshot,
    node: NodeMetrics,
    thresholds: ThresholdSet,
) -> Alert | None:
    run_queue = _count(node.run_queue, "run_queue", node.name)
    if run_queue is None:
        return None

    crossed = _crossed(run_queue, thresholds.run_queue)
    if crossed is None:
        return None
    severity, threshold = crossed

    return _node_alert(
        snapshot, node, severity, "performance",
        title="High Run Queue",
        description=f"Run queue length is {run_queue:g} on node {node.name}",
        details=AlertDetails(
            current=run_queue,
            threshold=threshold,
            recommended="Node is CPU bound; consider adding capacity",
            affected=[node.name],
        ),
    )


# Queue triggers


def check_queue_depth(
    snapshot: MetricsSnapshot,
    queue: QueueMetrics,
    thresholds: ThresholdSet,
) -> Alert | None:
    messages = _count(queue.messages, "queue_messages", queue.name)
    if messages is None:
        return None

    crossed = _crossed(messages, thresholds.queue_messages)
    if crossed is None:
        return None
    severity, threshold = crossed

    return _queue_alert(
        snapshot, queue, severity, "queue",
        title="High Queue Depth",
        description=f"Queue {queue.name} has {messages:g} messages",
        details=AlertDetails(
            current=messages,
            threshold=threshold,
            recommended="Add consumers or investigate slow processing",
            affected=[queue.name],
        ),
    )


def check_unacked_messages(
    snapshot: MetricsSnapshot,
    queue: QueueMetrics,
    thresholds: ThresholdSet,
) -> Alert | None:
    unacked = _count(queue.messages_unacknowledged, "unacked_messages", queue.name)
    if unacked is None:
        return None

    crossed = _crossed(unacked, thresholds.unacked_messages)
    if crossed is None:
        return None
    severity, threshold = crossed

    return _queue_alert(
        snapshot, queue, severity, "queue",
        title="High Unacknowledged Messages",
        description=f"Queue {queue.name} has {unacked:g} unacknowledged messages",
        details=AlertDetails(
            current=unacked,
            threshold=threshold,
            recommended="Check consumers for stuck processing or missing acks",
            affected=[queue.name],
        ),
    )


def check_consumer_utilization(
    snapshot: MetricsSnapshot,
    queue: QueueMetrics,
    thresholds: ThresholdSet,
) -> Alert | None:
    """Warn when consumers deliver well below the publish rate.

    Consumer utilization is a minimum: the alert fires when the value
    falls below the warning bound. Queues without consumers are skipped.
    """
    utilization = queue.consumer_utilization
    if utilization is None:
        return None

    bound = thresholds.consumer_utilization
    if utilization >= bound.warning:
        return None

    return _queue_alert(
        snapshot, queue, "warning", "performance",
        title="Low Consumer Utilization",
        description=(
            f"Consumers on queue {queue.name} are delivering at "
            f"{utilization:.1f}% of the publish rate"
        ),
        details=AlertDetails(
            current=round(utilization),
            threshold=bound.warning,
            recommended="Scale consumers or increase prefetch",
            affected=[queue.name],
        ),
    )


def check_queue_without_consumers(
    snapshot: MetricsSnapshot,
    queue: QueueMetrics,
) -> Alert | None:
    messages = _count(queue.messages, "queue_messages", queue.name)
    if not messages or queue.consumers:
        return None

    return _queue_alert(
        snapshot, queue, "warning", "queue",
        title="Queue Without Consumers",
        description=f"Queue {queue.name} has {messages:g} messages and no consumers",
        details=AlertDetails(
            current=messages,
            recommended="Start consumers or remove the queue if unused",
            affected=[queue.name],
        ),
    )


def check_stale_messages(
    snapshot: MetricsSnapshot,
    queue: QueueMetrics,
) -> Alert | None:
    """Ready messages piling up while consumers deliver nothing."""
    ready = _count(queue.messages_ready, "messages_ready", queue.name)
    if ready is None or ready <= STALE_READY_MESSAGES:
        return None
    if not queue.consumers or (queue.deliver_rate or 0) > 0:
        return None

    return _queue_alert(
        snapshot, queue, "warning", "queue",
        title="Stale Messages",
        description=(
            f"Queue {queue.name} has {ready:g} ready messages but consumers "
            f"are not receiving them"
        ),
        details=AlertDetails(
            current=ready,
            threshold=STALE_READY_MESSAGES,
            recommended="Check whether consumers are blocked or stuck",
            affected=[queue.name],
        ),
    )


def check_message_accumulation(
    snapshot: MetricsSnapshot,
    queue: QueueMetrics,
) -> Alert | None:
    """Publish rate outrunning delivery rate by more than half."""
    publish = queue.publish_rate or 0
    deliver = queue.deliver_rate or 0
    messages = _count(queue.messages, "queue_messages", queue.name)
    if publish <= 0 or deliver <= 0 or messages is None:
        return None

    ratio = (publish - deliver) / publish
    if ratio <= ACCUMULATION_RATIO or messages <= ACCUMULATION_MIN_MESSAGES:
        return None

    return _queue_alert(
        snapshot, queue, "warning", "performance",
        title="Message Accumulation",
        description=(
            f"Queue {queue.name} is accumulating messages: publishing "
            f"{publish:.1f}/s, delivering {deliver:.1f}/s"
        ),
        details=AlertDetails(
            current=round(ratio * 100),
            threshold=ACCUMULATION_RATIO * 100,
            recommended="Scale consumers to match the publish rate",
            affected=[queue.name],
        ),
    )


def check_inactive_queue(
    snapshot: MetricsSnapshot,
    queue: QueueMetrics,
) -> Alert | None:
    """Info alert for an empty queue with no consumers idle over a day."""
    if queue.messages or queue.consumers or queue.idle_since is None:
        return None

    idle_since = queue.idle_since
    if idle_since.tzinfo is None:
        idle_since = idle_since.replace(tzinfo=timezone.utc)
    idle_for = snapshot.collected_at - idle_since
    if idle_for <= INACTIVE_AFTER:
        return None

    return _queue_alert(
        snapshot, queue, "info", "queue",
        title="Inactive Queue",
        description=(
            f"Queue {queue.name} has been idle for "
            f"{idle_for.total_seconds() / 3600:.0f} hours"
        ),
        details=AlertDetails(
            current=idle_since.isoformat(),
            recommended="Consider deleting the queue if it is no longer used",
            affected=[queue.name],
        ),
    )


# Cluster triggers


def check_connections(
    snapshot: MetricsSnapshot,
    thresholds: ThresholdSet,
) -> Alert | None:
    cluster = snapshot.cluster
    percent = _percent(
        cluster.connection_count, cluster.connection_limit, "connections", cluster.name,
    )
    if percent is None:
        return None

    crossed = _crossed(percent, thresholds.connections)
    if crossed is None:
        return None
    severity, threshold = crossed

    return Alert(
        server_id=snapshot.server_id,
        server_name=snapshot.server_name,
        severity=severity,
        category="connection",
        title="High Connection Usage",
        description=(
            f"{cluster.connection_count} of {cluster.connection_limit} "
            f"connections in use ({percent:.1f}%)"
        ),
        source=AlertSource(type="cluster", name=cluster.name),
        details=AlertDetails(
            current=round(percent),
            threshold=threshold,
            recommended="Review connection pooling or raise the connection limit",
        ),
        timestamp=snapshot.collected_at,
    )


def check_node(
    snapshot: MetricsSnapshot,
    node: NodeMetrics,
    thresholds: ThresholdSet,
) -> list[Alert]:
    """Run all node triggers. Resource checks are skipped for a stopped node."""
    down = check_node_running(snapshot, node)
    if down is not None:
        return [down]

    results = [
        check_network_partitions(snapshot, node),
        check_memory_alarm(snapshot, node),
        check_memory_usage(snapshot, node, thresholds),
        check_disk_alarm(snapshot, node),
        check_disk_space(snapshot, node, thresholds),
        check_file_descriptors(snapshot, node, thresholds),
        check_sockets(snapshot, node, thresholds),
        check_processes(snapshot, node, thresholds),
        check_run_queue(snapshot, node, thresholds),
    ]
    return [alert for alert in results if alert is not None]


def check_queue(
    snapshot: MetricsSnapshot,
    queue: QueueMetrics,
    thresholds: ThresholdSet,
) -> list[Alert]:
    results = [
        check_queue_depth(snapshot, queue, thresholds),
        check_unacked_messages(snapshot, queue, thresholds),
        check_queue_without_consumers(snapshot, queue),
        check_stale_messages(snapshot, queue),
        check_inactive_queue(snapshot, queue),
        check_consumer_utilization(snapshot, queue, thresholds),
        check_message_accumulation(snapshot, queue),
    ]
    return [alert for alert in results if alert is not None]


def collapse_by_key(candidates: list[Alert]) -> list[Alert]:
    """Keep one alert per identity key, the most severe one.

    Among equally severe candidates the first one evaluated wins. The
    result is ordered by severity (critical first) then key.
    """
    chosen: dict[str, Alert] = {}
    for alert in candidates:
        existing = chosen.get(alert.key)
        if existing is None or SEVERITY_RANK[alert.severity] > SEVERITY_RANK[existing.severity]:
            chosen[alert.key] = alert

    return sorted(
        chosen.values(),
        key=lambda a: (-SEVERITY_RANK[a.severity], a.key),
    )


def classify(snapshot: MetricsSnapshot, thresholds: ThresholdSet) -> list[Alert]:
    """Turn a metrics snapshot into candidate alerts.

    Pure: the same snapshot and thresholds always produce the same
    candidates. Candidate timestamps are the snapshot's ``collected_at``.

    Args:
        snapshot: Metrics polled from one server.
        thresholds: Thresholds in effect for the server's workspace.

    Returns:
        Candidate alerts with unique keys, most severe first.
    """
    candidates: list[Alert] = []

    for node in snapshot.nodes:
        candidates.extend(check_node(snapshot, node, thresholds))

    for queue in snapshot.queues:
        if snapshot.vhost is not None and queue.vhost != snapshot.vhost:
            continue
        candidates.extend(check_queue(snapshot, queue, thresholds))

    connections = check_connections(snapshot, thresholds)
    if connections is not None:
        candidates.append(connections)

    alerts = collapse_by_key(candidates)
    logger.debug(
        "Classified snapshot for %s: %d candidates, %d after collapse",
        snapshot.server_id, len(candidates), len(alerts),
    )
    return alerts


__all__ = [
    "check_connections",
    "check_consumer_utilization",
    "check_disk_alarm",
    "check_disk_space",
    "check_file_descriptors",
    "check_inactive_queue",
    "check_memory_alarm",
    "check_memory_usage",
    "check_message_accumulation",
    "check_network_partitions",
    "check_node",
    "check_node_running",
    "check_processes",
    "check_queue",
    "check_queue_depth",
    "check_queue_without_consumers",
    "check_run_queue",
    "check_sockets",
    "check_stale_messages",
    "check_unacked_messages",
    "classify",
    "collapse_by_key",
]
