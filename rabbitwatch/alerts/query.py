"""Read-side views over the alert collections.

Filtering, sorting and pagination are plain functions; the
``AlertQueryService`` composes them over the ``AlertStore`` and adds
the roll-up summaries and the direct health probe.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from rabbitwatch.alerts.collaborators import FREE_PLAN, PlanProvider, ServerDirectory
from rabbitwatch.alerts.config import AlertConfig
from rabbitwatch.alerts.health import HealthChecker
from rabbitwatch.alerts.lifecycle import AlertStore, in_vhost_scope
from rabbitwatch.alerts.schemas import (
    SEVERITY_RANK,
    Alert,
    AlertSummary,
    ClusterHealthSummary,
    HealthCheck,
)


def filter_alerts(
    alerts: list[Alert],
    severity: str | None = None,
    category: str | None = None,
    resolved: bool | None = None,
    vhost: str | None = None,
) -> list[Alert]:
    """Apply exact-match filters in order: severity, category, resolved, vhost.

    ``None`` disables a filter. The vhost filter only narrows queue
    alerts; node and cluster alerts always pass.
    """
    result = alerts
    if severity is not None:
        result = [a for a in result if a.severity == severity]
    if category is not None:
        result = [a for a in result if a.category == category]
    if resolved is not None:
        result = [a for a in result if a.resolved == resolved]
    if vhost is not None:
        result = [a for a in result if in_vhost_scope(a, vhost)]
    return result


def sort_newest_first(alerts: list[Alert]) -> list[Alert]:
    """Newest ``timestamp`` first; ties broken by key for a stable order."""
    by_key = sorted(alerts, key=lambda a: a.key)
    return sorted(by_key, key=lambda a: a.timestamp, reverse=True)


def paginate(alerts: list[Alert], limit: int | None = None, offset: int = 0) -> list[Alert]:
    if limit is None:
        return alerts[offset:]
    return alerts[offset:offset + limit]


def summarize(alerts: list[Alert]) -> AlertSummary:
    return AlertSummary.from_alerts(alerts)


def cluster_health(alerts: list[Alert], issue_limit: int = 5) -> ClusterHealthSummary:
    """Roll active alerts up into a healthy/degraded/critical verdict.

    Issues list the most severe alerts first, capped at ``issue_limit``.
    """
    summary = summarize(alerts)
    if summary.critical:
        health = "critical"
    elif summary.warning:
        health = "degraded"
    else:
        health = "healthy"

    ranked = sorted(
        alerts,
        key=lambda a: (-SEVERITY_RANK[a.severity], a.key),
    )
    issues = [f"{a.title}: {a.source.name}" for a in ranked[:issue_limit]]
    return ClusterHealthSummary(cluster_health=health, summary=summary, issues=issues)


@dataclass
class AlertPage:
    """One page of a filtered alert query.

    ``total`` and ``summary`` describe the filtered set before pagination.
    """

    alerts: list[Alert] = field(default_factory=list)
    total: int = 0
    summary: AlertSummary = field(default_factory=AlertSummary)
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def redacted(self) -> "AlertPage":
        """Same counts with the alert list withheld (free plan)."""
        return AlertPage(
            alerts=[], total=self.total, summary=self.summary, timestamp=self.timestamp,
        )


class AlertQueryService:
    """Serves active, resolved, summary and health views for one server.

    When a plan provider is given, workspaces whose owner is on the free
    plan get counts without the alert list.
    """

    def __init__(
        self,
        store: AlertStore,
        directory: ServerDirectory,
        health_checker: HealthChecker,
        config: AlertConfig | None = None,
        plan_provider: PlanProvider | None = None,
    ) -> None:
        self._store = store
        self._directory = directory
        self._health = health_checker
        self._config = config or AlertConfig()
        self._plans = plan_provider

    async def is_free_plan(self, workspace_id: str) -> bool:
        if self._plans is None:
            return False
        workspace = await self._directory.get_workspace(workspace_id)
        return await self._plans.get_user_plan(workspace.owner_id) == FREE_PLAN

    async def get_server_alerts(
        self,
        server_id: str,
        server_name: str,
        workspace_id: str,
        vhost: str,
        severity: str | None = None,
        category: str | None = None,
        resolved: bool | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> AlertPage:
        """Active alerts of a server, scoped to ``vhost``.

        Args:
            server_id: Server to query.
            server_name: Display name stamped on returned alerts.
            workspace_id: Owning workspace.
            vhost: Virtual host scope for queue alerts.
            severity: Optional severity filter.
            category: Optional category filter.
            resolved: Optional resolved-flag filter.
            limit: Page size (None returns everything).
            offset: Number of matching alerts to skip.

        Returns:
            AlertPage of active alerts, redacted on the free plan.
        """
        active = await self._store.get_active(workspace_id, server_id)
        matching = sort_newest_first(
            filter_alerts(active, severity, category, resolved, vhost)
        )
        page = paginate(matching, limit, offset)
        if server_name:
            page = [
                a if a.server_name else _with_server_name(a, server_name)
                for a in page
            ]
        result = AlertPage(alerts=page, total=len(matching), summary=summarize(matching))
        if await self.is_free_plan(workspace_id):
            return result.redacted()
        return result

    async def get_resolved_alerts(
        self,
        server_id: str,
        workspace_id: str,
        limit: int | None = None,
        offset: int = 0,
        severity: str | None = None,
        category: str | None = None,
        vhost: str | None = None,
    ) -> AlertPage:
        """Resolved alerts of a server within the retention window."""
        cutoff = datetime.now(timezone.utc) - timedelta(
            days=self._config.resolved_retention_days,
        )
        resolved = [
            a for a in await self._store.get_resolved(workspace_id, server_id)
            if a.resolved_at is None or a.resolved_at >= cutoff
        ]
        matching = sort_newest_first(
            filter_alerts(resolved, severity, category, vhost=vhost)
        )
        return AlertPage(
            alerts=paginate(matching, limit, offset),
            total=len(matching),
            summary=summarize(matching),
        )

    async def get_cluster_health(self, server_id: str, workspace_id: str) -> ClusterHealthSummary:
        active = await self._store.get_active(workspace_id, server_id)
        return cluster_health(active, self._config.health_issue_limit)

    async def get_health_check(self, server_id: str, workspace_id: str) -> HealthCheck:
        """Probe the server directly through the metrics source.

        Raises:
            NotFoundError: Unknown server for this workspace.
        """
        server = await self._directory.get_server(server_id, workspace_id)
        return await self._health.get_health_check(server)


def _with_server_name(alert: Alert, server_name: str) -> Alert:
    return dataclasses.replace(alert, server_name=server_name)
