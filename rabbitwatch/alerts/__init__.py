"""Alert detection, lifecycle and notification for RabbitMQ servers.

Components:
- MetricsSnapshot: Input contract polled from a server
- ThresholdSet / ThresholdStore: Per-workspace warning/critical bounds
- classify: Stateless triggers turning a snapshot into candidate alerts
- AlertLifecycleTracker / AlertStore: Active vs resolved bookkeeping
- AlertQueryService / HealthChecker: Read-side views and health probe
- NotificationChannel / SlackChannel / WebhookChannel / EmailChannel: Delivery channels
- NotificationConfig / NotificationDispatcher: Retry and fan-out
- AlertService / AlertMonitor: One detection cycle, and the periodic loop
"""

from rabbitwatch.alerts.channels import (
    DeliveryResult,
    EmailChannel,
    NotificationChannel,
    NotificationContext,
    SlackChannel,
    WebhookChannel,
    build_channels,
)
from rabbitwatch.alerts.collaborators import (
    InMemoryDirectory,
    MetricsSource,
    PlanProvider,
    ServerDirectory,
    ServerInfo,
    StaticMetricsSource,
    WorkspaceInfo,
)
from rabbitwatch.alerts.config import AlertConfig
from rabbitwatch.alerts.dispatcher import NotificationConfig, NotificationDispatcher
from rabbitwatch.alerts.errors import (
    AlertingError,
    DeliveryError,
    MetricsUnavailableError,
    NotFoundError,
    PermissionDeniedError,
    SettingsValidationError,
    TerminalDeliveryError,
    ThresholdValidationError,
    TransientDeliveryError,
    ValidationError,
)
from rabbitwatch.alerts.health import HealthChecker
from rabbitwatch.alerts.lifecycle import (
    AlertLifecycleTracker,
    AlertStore,
    ReconcileResult,
    reconcile,
)
from rabbitwatch.alerts.monitor import AlertMonitor
from rabbitwatch.alerts.notification_settings import (
    NotificationSettings,
    NotificationSettingsStore,
    SlackConfig,
    WebhookConfig,
)
from rabbitwatch.alerts.query import AlertPage, AlertQueryService
from rabbitwatch.alerts.schemas import (
    VALID_CATEGORIES,
    VALID_SEVERITIES,
    Alert,
    AlertDetails,
    AlertSeverity,
    AlertSource,
    AlertSummary,
    ClusterHealthSummary,
    HealthCheck,
)
from rabbitwatch.alerts.service import AlertService, CheckResult
from rabbitwatch.alerts.snapshot import (
    ClusterMetrics,
    MetricsSnapshot,
    NodeMetrics,
    QueueMetrics,
)
from rabbitwatch.alerts.thresholds import (
    DEFAULT_THRESHOLDS,
    MetricThreshold,
    ThresholdSet,
    ThresholdStore,
)
from rabbitwatch.alerts.triggers import classify

__all__ = [
    "Alert",
    "AlertConfig",
    "AlertDetails",
    "AlertLifecycleTracker",
    "AlertMonitor",
    "AlertPage",
    "AlertQueryService",
    "AlertService",
    "AlertSeverity",
    "AlertSource",
    "AlertStore",
    "AlertSummary",
    "AlertingError",
    "CheckResult",
    "ClusterHealthSummary",
    "ClusterMetrics",
    "DEFAULT_THRESHOLDS",
    "DeliveryError",
    "DeliveryResult",
    "EmailChannel",
    "HealthCheck",
    "HealthChecker",
    "InMemoryDirectory",
    "MetricThreshold",
    "MetricsSnapshot",
    "MetricsSource",
    "MetricsUnavailableError",
    "NodeMetrics",
    "NotFoundError",
    "NotificationChannel",
    "NotificationConfig",
    "NotificationContext",
    "NotificationDispatcher",
    "NotificationSettings",
    "NotificationSettingsStore",
    "PermissionDeniedError",
    "PlanProvider",
    "QueueMetrics",
    "ReconcileResult",
    "ServerDirectory",
    "ServerInfo",
    "SettingsValidationError",
    "SlackChannel",
    "SlackConfig",
    "StaticMetricsSource",
    "TerminalDeliveryError",
    "ThresholdSet",
    "ThresholdStore",
    "ThresholdValidationError",
    "TransientDeliveryError",
    "VALID_CATEGORIES",
    "VALID_SEVERITIES",
    "ValidationError",
    "WebhookChannel",
    "WebhookConfig",
    "WorkspaceInfo",
    "build_channels",
    "classify",
    "reconcile",
]
