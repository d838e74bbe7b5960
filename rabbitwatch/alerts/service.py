"""Alert service orchestrating one detection cycle per server.

poll → classify → reconcile → notify. Trigger logic is delegated to the
stateless functions in ``triggers.py`` and lifecycle bookkeeping to
``AlertLifecycleTracker``. Notifications run as background tasks so a
slow or failing channel never delays or fails the cycle.
"""

import asyncio
import logging
import time
from dataclasses import dataclass

from rabbitwatch.alerts.channels import NotificationContext, build_channels
from rabbitwatch.alerts.collaborators import MetricsSource, ServerDirectory, ServerInfo
from rabbitwatch.alerts.dispatcher import NotificationDispatcher
from rabbitwatch.alerts.errors import MetricsUnavailableError
from rabbitwatch.alerts.lifecycle import AlertLifecycleTracker, ReconcileResult
from rabbitwatch.alerts.notification_settings import NotificationSettingsStore
from rabbitwatch.alerts.schemas import Alert
from rabbitwatch.alerts.thresholds import ThresholdStore
from rabbitwatch.alerts.triggers import classify
from rabbitwatch.config.settings import Settings, get_settings
from rabbitwatch.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    """What one detection cycle did for a server."""

    server_id: str
    candidates: int
    lifecycle: ReconcileResult


class AlertService:
    """Orchestrator for alert detection, lifecycle and notification.

    Combines the stateless classifier with the lifecycle tracker, then
    hands newly active alerts to the dispatcher without awaiting it.
    """

    def __init__(
        self,
        metrics_source: MetricsSource,
        directory: ServerDirectory,
        threshold_store: ThresholdStore,
        tracker: AlertLifecycleTracker,
        settings_store: NotificationSettingsStore,
        dispatcher: NotificationDispatcher,
        settings: Settings | None = None,
    ) -> None:
        self._source = metrics_source
        self._directory = directory
        self._thresholds = threshold_store
        self._tracker = tracker
        self._settings_store = settings_store
        self._dispatcher = dispatcher
        self._settings = settings or get_settings()
        self._pending: set[asyncio.Task] = set()

    async def run_check(
        self,
        server: ServerInfo,
        vhost: str | None = None,
    ) -> CheckResult | None:
        """Run one detection cycle for a server.

        Args:
            server: Server to check.
            vhost: Restrict queue checks to one virtual host.

        Returns:
            CheckResult, or None when the metrics source was unavailable
            (active alerts are left untouched in that case).
        """
        started = time.perf_counter()
        metrics = get_metrics()

        try:
            snapshot = await self._source.fetch_snapshot(server, vhost)
        except MetricsUnavailableError as e:
            logger.warning("Skipping check for server %s: %s", server.id, e)
            metrics.record_metrics_unavailable()
            return None

        thresholds = await self._thresholds.get_thresholds(server.workspace_id)
        candidates = classify(snapshot, thresholds)
        result = await self._tracker.apply(
            server.workspace_id, server.id, candidates, vhost=vhost,
        )

        metrics.record_alerts_raised([a.severity for a in result.newly_active])
        metrics.record_alerts_resolved([a.severity for a in result.newly_resolved])
        metrics.record_check(time.perf_counter() - started)

        if result.newly_active:
            self._schedule_notification(server, result.newly_active)

        return CheckResult(
            server_id=server.id,
            candidates=len(candidates),
            lifecycle=result,
        )

    def _schedule_notification(self, server: ServerInfo, alerts: list[Alert]) -> None:
        task = asyncio.create_task(self._notify(server, alerts))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _notify(self, server: ServerInfo, alerts: list[Alert]) -> None:
        """Send newly active alerts to the workspace's channels.

        Errors are logged here and never propagate to the detection cycle.
        """
        try:
            workspace = await self._directory.get_workspace(server.workspace_id)
            notifications = await self._settings_store.get(server.workspace_id)
            config = self._dispatcher.config
            channels = build_channels(
                notifications,
                self._settings,
                max_attachments=config.slack_max_attachments,
                timeout=config.send_timeout_seconds,
            )
            if not channels:
                logger.debug("No notification channels for workspace %s", workspace.id)
                return

            context = NotificationContext(
                workspace_id=workspace.id,
                workspace_name=workspace.name,
                server_id=server.id,
                server_name=server.name,
                frontend_url=self._settings.frontend_url,
            )
            await self._dispatcher.dispatch_all(channels, alerts, context)
        except Exception as e:
            logger.error(
                "Notification dispatch failed for server %s: %s", server.id, e,
            )

    async def drain(self) -> None:
        """Wait for in-flight notification tasks to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
