"""Schema definitions for alert records and roll-up views.

An alert represents an operational condition on a RabbitMQ server:
a node, a queue (qualified by vhost), or the cluster as a whole.
Alerts are identified by a deterministic fingerprint rather than a
random ID, so the same condition observed across poll cycles maps to
the same record.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

AlertSeverity = Literal["critical", "warning", "info"]

VALID_SEVERITIES: frozenset[str] = frozenset({
    "critical",
    "warning",
    "info",
})

SEVERITY_RANK: dict[str, int] = {"critical": 3, "warning": 2, "info": 1}

AlertCategory = Literal[
    "memory",
    "disk",
    "connection",
    "queue",
    "node",
    "performance",
]

VALID_CATEGORIES: frozenset[str] = frozenset({
    "memory",
    "disk",
    "connection",
    "queue",
    "node",
    "performance",
})

SourceType = Literal["node", "queue", "cluster"]

VALID_SOURCE_TYPES: frozenset[str] = frozenset({"node", "queue", "cluster"})

ClusterHealth = Literal["healthy", "degraded", "critical"]
CheckStatus = Literal["healthy", "warning", "critical"]


def alert_fingerprint(
    server_id: str,
    category: str,
    source_type: str,
    source_name: str,
    vhost: str | None = None,
) -> str:
    """Build the stable identity key for an alert.

    Format: ``{server_id}-{category}-{source_type}-{source_name}``. Queue
    alerts with a vhost insert it before the source name so the same queue
    name in two vhosts yields two keys. Node and cluster keys never carry
    a vhost.
    """
    if source_type == "queue" and vhost:
        return f"{server_id}-{category}-{source_type}-{vhost}-{source_name}"
    return f"{server_id}-{category}-{source_type}-{source_name}"


@dataclass(frozen=True)
class AlertSource:
    """What the alert is about: a node, a queue, or the cluster."""

    type: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "name": self.name}


@dataclass
class AlertDetails:
    """Structured context for an alert.

    Attributes:
        current: Observed value (number, or a short description string).
        threshold: The bound that was crossed, if any.
        recommended: Suggested operator action.
        affected: Names of affected resources.
    """

    current: Any = None
    threshold: float | None = None
    recommended: str | None = None
    affected: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"current": self.current}
        if self.threshold is not None:
            data["threshold"] = self.threshold
        if self.recommended is not None:
            data["recommended"] = self.recommended
        if self.affected:
            data["affected"] = list(self.affected)
        return data


@dataclass
class Alert:
    """An active or resolved alert.

    Attributes:
        server_id: Server the alert was raised for.
        severity: Urgency level (critical, warning, info).
        category: Metric family (memory, disk, connection, queue, node, performance).
        title: Short human-readable summary.
        description: Detailed description of the condition.
        source: Node, queue, or cluster the condition applies to.
        details: Current value, crossed threshold, recommendation.
        server_name: Display name of the server.
        workspace_id: Owning workspace, when known.
        vhost: Virtual host for queue-scoped alerts.
        timestamp: When the condition was first detected.
        resolved: Whether the condition has cleared.
        resolved_at: When the condition cleared.
    """

    server_id: str
    severity: str
    category: str
    title: str
    description: str
    source: AlertSource
    details: AlertDetails = field(default_factory=AlertDetails)
    server_name: str = ""
    workspace_id: str | None = None
    vhost: str | None = None
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    resolved: bool = False
    resolved_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.severity not in VALID_SEVERITIES:
            raise ValueError(
                f"Invalid severity {self.severity!r}. "
                f"Must be one of: {sorted(VALID_SEVERITIES)}"
            )
        if self.category not in VALID_CATEGORIES:
            raise ValueError(
                f"Invalid category {self.category!r}. "
                f"Must be one of: {sorted(VALID_CATEGORIES)}"
            )
        if self.source.type not in VALID_SOURCE_TYPES:
            raise ValueError(
                f"Invalid source type {self.source.type!r}. "
                f"Must be one of: {sorted(VALID_SOURCE_TYPES)}"
            )

    @property
    def key(self) -> str:
        """Deterministic identity key (see ``alert_fingerprint``)."""
        return alert_fingerprint(
            self.server_id,
            self.category,
            self.source.type,
            self.source.name,
            self.vhost,
        )

    @property
    def id(self) -> str:
        return self.key

    @property
    def duration_seconds(self) -> float | None:
        """Seconds between first detection and resolution."""
        if self.resolved_at is None:
            return None
        return (self.resolved_at - self.timestamp).total_seconds()

    def resolve(self, resolved_at: datetime) -> "Alert":
        """Return a resolved copy of this alert."""
        return dataclasses.replace(
            self, resolved=True, resolved_at=resolved_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        data: dict[str, Any] = {
            "id": self.id,
            "server_id": self.server_id,
            "server_name": self.server_name,
            "severity": self.severity,
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "details": self.details.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "resolved": self.resolved,
            "source": self.source.to_dict(),
        }
        if self.vhost is not None:
            data["vhost"] = self.vhost
        if self.resolved_at is not None:
            data["resolved_at"] = self.resolved_at.isoformat()
            data["duration_seconds"] = self.duration_seconds
        return data


@dataclass(frozen=True)
class AlertSummary:
    """Severity counts over a collection of alerts."""

    total: int = 0
    critical: int = 0
    warning: int = 0
    info: int = 0

    @classmethod
    def from_alerts(cls, alerts: list[Alert]) -> "AlertSummary":
        counts = {"critical": 0, "warning": 0, "info": 0}
        for alert in alerts:
            counts[alert.severity] += 1
        return cls(total=len(alerts), **counts)

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "critical": self.critical,
            "warning": self.warning,
            "info": self.info,
        }


@dataclass
class ClusterHealthSummary:
    """Roll-up health of a server derived from its active alerts."""

    cluster_health: str
    summary: AlertSummary
    issues: list[str] = field(default_factory=list)
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "cluster_health": self.cluster_health,
            "summary": self.summary.to_dict(),
            "issues": list(self.issues),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ComponentCheck:
    """Status of one health-check component."""

    status: str = "healthy"
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "details": self.details,
        }


HEALTH_COMPONENTS: tuple[str, ...] = (
    "connectivity",
    "nodes",
    "memory",
    "disk",
    "queues",
)


@dataclass
class HealthCheck:
    """Direct health probe of a server, independent of the alert pipeline."""

    checks: dict[str, ComponentCheck] = field(
        default_factory=lambda: {name: ComponentCheck() for name in HEALTH_COMPONENTS}
    )
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def overall(self) -> str:
        """Worst status across all components."""
        order = {"healthy": 0, "warning": 1, "critical": 2}
        return max(
            (check.status for check in self.checks.values()),
            key=lambda status: order[status],
            default="healthy",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall,
            "checks": {name: check.to_dict() for name, check in self.checks.items()},
            "timestamp": self.timestamp.isoformat(),
        }
