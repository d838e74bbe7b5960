"""
Periodic alert monitor.

Runs a detection cycle for every known server on a fixed interval, with
a bound on how many servers are checked at once. A failure on one
server is logged and never affects the others.

Usage:
    monitor = AlertMonitor(service, directory)
    await monitor.start()  # Runs until stopped
"""

import asyncio
import time
from typing import Any

import structlog

from rabbitwatch.alerts.collaborators import ServerDirectory, ServerInfo
from rabbitwatch.alerts.config import AlertConfig
from rabbitwatch.alerts.service import AlertService
from rabbitwatch.observability.logging import log_context

logger = structlog.get_logger(__name__)


class AlertMonitor:
    """Drives ``AlertService.run_check`` across all servers."""

    def __init__(
        self,
        service: AlertService,
        directory: ServerDirectory,
        config: AlertConfig | None = None,
    ) -> None:
        self._service = service
        self._directory = directory
        self._config = config or AlertConfig()
        self._semaphore = asyncio.Semaphore(self._config.check_concurrency)
        self._running = False
        self._cycle_in_progress = False
        self._task: asyncio.Task | None = None

    async def _check_server(self, server: ServerInfo) -> bool:
        async with self._semaphore:
            with log_context(server_id=server.id, workspace_id=server.workspace_id):
                try:
                    result = await self._service.run_check(server)
                except Exception as e:
                    logger.error("Alert check failed", error=str(e))
                    return False
            return result is not None

    async def run_once(self) -> dict[str, Any]:
        """
        Check every server once.

        A call made while a previous cycle is still running is skipped.

        Returns:
            Dictionary with checked/failed/skipped counts
        """
        if self._cycle_in_progress:
            logger.warning("Previous alert cycle still running, skipping")
            return {"checked": 0, "failed": 0, "skipped": True}

        self._cycle_in_progress = True
        start_time = time.monotonic()
        try:
            servers = await self._directory.list_servers()
            outcomes = await asyncio.gather(
                *(self._check_server(server) for server in servers),
            )
        finally:
            self._cycle_in_progress = False

        checked = sum(1 for ok in outcomes if ok)
        failed = len(outcomes) - checked
        logger.info(
            "Alert cycle completed",
            servers=len(servers),
            checked=checked,
            failed=failed,
            elapsed_seconds=round(time.monotonic() - start_time, 2),
        )
        return {"checked": checked, "failed": failed, "skipped": False}

    async def start(self) -> None:
        """
        Run cycles until stop() is called.
        """
        self._running = True
        logger.info(
            "Starting alert monitor",
            interval_seconds=self._config.check_interval_seconds,
            concurrency=self._config.check_concurrency,
        )

        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Alert cycle error", error=str(e))

            await asyncio.sleep(self._config.check_interval_seconds)

        logger.info("Alert monitor stopped")

    def start_background(self) -> asyncio.Task:
        """Start the loop as a task on the running event loop."""
        self._task = asyncio.create_task(self.start(), name="alert_monitor")
        return self._task

    async def stop(self) -> None:
        """Stop the monitor and wait for pending notifications."""
        logger.info("Stopping alert monitor")
        self._running = False

        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

        await self._service.drain()

    @property
    def is_running(self) -> bool:
        return self._running
