"""
Prometheus metrics for the alerting pipeline.

Defines and exposes metrics for:
- Alerts raised and resolved, by severity
- Notification deliveries, by channel and outcome
- Check cycle latency
- Metrics source failures

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    start_http_server,
)

from rabbitwatch.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class AlertMetrics:
    """
    Prometheus metrics collector for the alerting pipeline.

    Usage:
        metrics = get_metrics()
        metrics.start_server()
        metrics.record_alerts_raised(["critical", "warning"])
    """

    def __init__(self):
        self.alerts_raised = Counter(
            "rabbitwatch_alerts_raised_total",
            "Total alerts that transitioned to active",
            ["severity"],
        )

        self.alerts_resolved = Counter(
            "rabbitwatch_alerts_resolved_total",
            "Total alerts that transitioned to resolved",
            ["severity"],
        )

        self.deliveries = Counter(
            "rabbitwatch_notification_deliveries_total",
            "Notification delivery outcomes",
            ["channel", "status"],  # status: success, failed
        )

        self.delivery_attempts = Counter(
            "rabbitwatch_notification_attempts_total",
            "Individual transport attempts, including retries",
            ["channel"],
        )

        self.check_latency = Histogram(
            "rabbitwatch_check_cycle_seconds",
            "Time to poll, classify and reconcile one server",
            buckets=LATENCY_BUCKETS,
        )

        self.metrics_unavailable = Counter(
            "rabbitwatch_metrics_unavailable_total",
            "Check cycles skipped because the metrics source failed",
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    def record_alerts_raised(self, severities: list[str]) -> None:
        for severity in severities:
            self.alerts_raised.labels(severity=severity).inc()

    def record_alerts_resolved(self, severities: list[str]) -> None:
        for severity in severities:
            self.alerts_resolved.labels(severity=severity).inc()

    def record_delivery(self, channel: str, success: bool, attempts: int) -> None:
        """
        Record the outcome of one channel delivery.

        Args:
            channel: Channel type (slack, webhook, email)
            success: Whether delivery succeeded
            attempts: Number of transport attempts made
        """
        status = "success" if success else "failed"
        self.deliveries.labels(channel=channel, status=status).inc()
        if attempts > 0:
            self.delivery_attempts.labels(channel=channel).inc(attempts)

    def record_check(self, latency: float) -> None:
        self.check_latency.observe(latency)

    def record_metrics_unavailable(self) -> None:
        self.metrics_unavailable.inc()


# Global metrics instance
_metrics: AlertMetrics | None = None


def get_metrics() -> AlertMetrics:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = AlertMetrics()
    return _metrics
