"""Notification dispatcher orchestrating alert delivery across channels.

Handles per-attempt timeouts, exponential-backoff retries for transient
failures and concurrent fan-out. One channel's failure never affects
another channel's delivery, and nothing raised by a channel escapes
``dispatch_all``.

Pattern: Orchestrator (like AlertService), delegates to stateless channels.
"""

import asyncio
import logging
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from rabbitwatch.alerts.backoff import ExponentialBackoff
from rabbitwatch.alerts.channels import DeliveryResult, NotificationChannel, NotificationContext
from rabbitwatch.alerts.errors import DeliveryError, TransientDeliveryError
from rabbitwatch.alerts.schemas import Alert
from rabbitwatch.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class NotificationConfig(BaseSettings):
    """Configuration for notification dispatch."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_",
        case_sensitive=False,
        extra="ignore",
    )

    retry_max_attempts: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Additional attempts after the first for transient failures",
    )
    retry_base_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Delay in seconds before the first retry; doubles each retry",
    )
    retry_max_delay: float = Field(
        default=30.0,
        ge=0.0,
        description="Upper bound on a single retry delay",
    )
    send_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Timeout for a single delivery attempt",
    )
    slack_max_attachments: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Per-alert attachments in one Slack message",
    )


class NotificationDispatcher:
    """Delivers alert batches to notification channels.

    Stateless between calls: each dispatch works only on the batch and
    channels it is given.
    """

    def __init__(self, config: NotificationConfig | None = None) -> None:
        self._config = config or NotificationConfig()

    @property
    def config(self) -> NotificationConfig:
        return self._config

    async def send(
        self,
        channel: NotificationChannel,
        payload: dict[str, Any],
        alert_count: int = 0,
    ) -> DeliveryResult:
        """Send a payload with timeout and retries.

        Transient failures (5xx, 429, network errors, timeouts) are retried
        up to ``retry_max_attempts`` more times, waiting
        ``retry_base_delay * 2**retry`` between attempts. Terminal failures
        stop immediately.

        Args:
            channel: Target channel.
            payload: Payload built by ``channel.build_payload``.
            alert_count: Number of alerts in the payload, for reporting.

        Returns:
            DeliveryResult; never raises for transport failures.
        """
        backoff = ExponentialBackoff(
            base_delay=self._config.retry_base_delay,
            max_delay=self._config.retry_max_delay,
        )
        max_attempts = self._config.retry_max_attempts + 1
        last_error: DeliveryError | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                status = await asyncio.wait_for(
                    channel.send(payload),
                    timeout=self._config.send_timeout_seconds,
                )
                if attempt > 1:
                    logger.info(
                        "Delivered to %s %s on attempt %d",
                        channel.name, channel.id, attempt,
                    )
                return DeliveryResult(
                    channel_id=channel.id,
                    channel_type=channel.name,
                    success=True,
                    status_code=status,
                    attempts=attempt,
                    alert_count=alert_count,
                )
            except asyncio.TimeoutError:
                last_error = TransientDeliveryError(
                    f"timed out after {self._config.send_timeout_seconds}s"
                )
            except DeliveryError as e:
                last_error = e

            if not isinstance(last_error, TransientDeliveryError):
                logger.warning(
                    "Channel %s %s failed permanently: %s",
                    channel.name, channel.id, last_error,
                )
                break

            logger.warning(
                "Channel %s %s send error (attempt %d/%d): %s",
                channel.name, channel.id, attempt, max_attempts, last_error,
            )
            if attempt < max_attempts:
                await asyncio.sleep(backoff.next_delay())
        else:
            logger.warning(
                "All %d attempts exhausted for channel %s %s",
                max_attempts, channel.name, channel.id,
            )

        return DeliveryResult(
            channel_id=channel.id,
            channel_type=channel.name,
            success=False,
            status_code=last_error.status_code if last_error else None,
            attempts=attempt,
            alert_count=alert_count,
            error=str(last_error) if last_error else None,
        )

    async def deliver(
        self,
        channel: NotificationChannel,
        alerts: list[Alert],
        context: NotificationContext,
    ) -> DeliveryResult:
        """Build the channel payload for ``alerts`` and send it."""
        try:
            payload = channel.build_payload(alerts, context)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(
                "Failed to build %s payload for %s: %s", channel.name, channel.id, e,
            )
            return DeliveryResult(
                channel_id=channel.id,
                channel_type=channel.name,
                success=False,
                alert_count=len(alerts),
                error=f"payload error: {e}",
            )
        return await self.send(channel, payload, alert_count=len(alerts))

    async def dispatch_all(
        self,
        channels: list[NotificationChannel],
        alerts: list[Alert],
        context: NotificationContext,
    ) -> list[DeliveryResult]:
        """Fan a batch out to every matching channel concurrently.

        A channel is skipped when none of the batch's alerts pass its
        severity and server filters. Each remaining channel receives only
        the alerts that pass.

        Args:
            channels: Candidate channels of the workspace.
            alerts: Newly active alerts.
            context: Workspace and server the batch belongs to.

        Returns:
            One DeliveryResult per channel that was attempted.
        """
        targets: list[tuple[NotificationChannel, list[Alert]]] = []
        for channel in channels:
            selected = channel.select_alerts(alerts, context.server_id)
            if selected:
                targets.append((channel, selected))
            else:
                logger.debug(
                    "Channel %s %s has no matching alerts, skipping",
                    channel.name, channel.id,
                )

        if not targets:
            return []

        outcomes = await asyncio.gather(
            *(self.deliver(channel, selected, context) for channel, selected in targets),
            return_exceptions=True,
        )

        results: list[DeliveryResult] = []
        for (channel, selected), outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Unexpected error dispatching to %s %s: %s",
                    channel.name, channel.id, outcome,
                )
                outcome = DeliveryResult(
                    channel_id=channel.id,
                    channel_type=channel.name,
                    success=False,
                    alert_count=len(selected),
                    error=str(outcome),
                )
            results.append(outcome)

        self._record_delivery(context, results)
        return results

    def _record_delivery(
        self,
        context: NotificationContext,
        results: list[DeliveryResult],
    ) -> None:
        """Log and count delivery outcomes."""
        metrics = get_metrics()
        for result in results:
            metrics.record_delivery(result.channel_type, result.success, result.attempts)

        successes = [r.channel_id for r in results if r.success]
        failures = [r.channel_id for r in results if not r.success]

        if failures and not successes:
            logger.error(
                "Alerts for server %s failed ALL channels: %s",
                context.server_id, failures,
            )
        elif failures:
            logger.warning(
                "Alerts for server %s partial delivery: ok=%s failed=%s",
                context.server_id, successes, failures,
            )
        else:
            logger.debug(
                "Alerts for server %s delivered to all channels: %s",
                context.server_id, successes,
            )
