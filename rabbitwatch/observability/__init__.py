"""Observability layer - logging and metrics."""

from rabbitwatch.observability.logging import log_context, setup_logging
from rabbitwatch.observability.metrics import AlertMetrics, get_metrics

__all__ = ["setup_logging", "log_context", "AlertMetrics", "get_metrics"]
