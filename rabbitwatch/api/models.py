"""
Request and response models for the alerting API.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Response model for errors."""

    detail: str = Field(..., description="Error message")
    error_type: str = Field(..., description="Type of error")


class ValidationErrorResponse(ErrorResponse):
    """Structured body for rejected threshold or settings updates."""

    fields: list[str] = Field(default_factory=list, description="Offending field names")
    errors: dict[str, str] = Field(default_factory=dict, description="Reason per field")
    metrics: list[str] | None = Field(
        default=None,
        description="Offending metric names (threshold updates only)",
    )


class HealthResponse(BaseModel):
    """Response model for service liveness."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Service version")
    monitor_running: bool = Field(
        default=False,
        description="Whether the background alert monitor is running",
    )
    servers: int = Field(default=0, description="Number of monitored servers")


# ── Alerts ───────────────────────────────────────────


class AlertSourceModel(BaseModel):
    type: str = Field(..., description="Source type: node, queue, cluster")
    name: str = Field(..., description="Node, queue or cluster name")


class AlertItem(BaseModel):
    """Single alert record."""

    id: str = Field(..., description="Deterministic alert key")
    server_id: str = Field(..., description="Server the alert was raised for")
    server_name: str = Field(default="", description="Server display name")
    severity: str = Field(..., description="Severity level: critical, warning, info")
    category: str = Field(
        ...,
        description="Category: memory, disk, connection, queue, node, performance",
    )
    title: str = Field(..., description="Short human-readable summary")
    description: str = Field(..., description="Detailed alert description")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Current value, threshold, recommendation, affected resources",
    )
    source: AlertSourceModel = Field(..., description="What the alert is about")
    vhost: str | None = Field(default=None, description="Virtual host of queue alerts")
    timestamp: str = Field(..., description="First detection time (ISO format)")
    resolved: bool = Field(default=False, description="Whether the condition has cleared")
    resolved_at: str | None = Field(default=None, description="Resolution time (ISO format)")
    duration_seconds: float | None = Field(
        default=None,
        description="Seconds between detection and resolution",
    )


class AlertSummaryModel(BaseModel):
    """Severity counts."""

    total: int = Field(default=0, description="Total alerts")
    critical: int = Field(default=0, description="Critical alerts")
    warning: int = Field(default=0, description="Warning alerts")
    info: int = Field(default=0, description="Info alerts")


class ServerAlertsResponse(BaseModel):
    """Response model for active alerts of a server."""

    alerts: list[AlertItem] = Field(..., description="Page of alerts (empty on the free plan)")
    summary: AlertSummaryModel = Field(..., description="Counts over all matching alerts")
    thresholds: dict[str, dict[str, float]] = Field(
        ...,
        description="Thresholds in effect for the workspace",
    )
    total: int = Field(..., description="Number of matching alerts before pagination")
    timestamp: str = Field(..., description="Response time (ISO format)")


class ResolvedAlertsResponse(BaseModel):
    """Response model for resolved alerts of a server."""

    alerts: list[AlertItem] = Field(..., description="Page of resolved alerts")
    total: int = Field(..., description="Number of matching alerts before pagination")
    timestamp: str = Field(..., description="Response time (ISO format)")


class ComponentCheckModel(BaseModel):
    status: str = Field(..., description="healthy, warning or critical")
    message: str = Field(..., description="Component status message")
    details: dict[str, Any] = Field(default_factory=dict, description="Measured values")


class HealthCheckModel(BaseModel):
    overall: str = Field(..., description="Worst component status")
    checks: dict[str, ComponentCheckModel] = Field(..., description="Per-component checks")
    timestamp: str = Field(..., description="Check time (ISO format)")


class HealthCheckResponse(BaseModel):
    """Response model for a direct server health probe."""

    health: HealthCheckModel = Field(..., description="Server health check")


class ClusterHealthResponse(BaseModel):
    """Response model for the active-alert health roll-up."""

    cluster_health: str = Field(..., description="healthy, degraded or critical")
    summary: AlertSummaryModel = Field(..., description="Counts of active alerts")
    issues: list[str] = Field(default_factory=list, description="Most severe issues first")
    timestamp: str = Field(..., description="Roll-up time (ISO format)")


# ── Thresholds ───────────────────────────────────────


class ThresholdsResponse(BaseModel):
    """Response model for workspace thresholds."""

    thresholds: dict[str, dict[str, float]] = Field(..., description="Thresholds in effect")
    can_modify: bool = Field(..., description="Whether the workspace plan allows edits")
    defaults: dict[str, dict[str, float]] = Field(..., description="Default thresholds")


class ThresholdUpdateRequest(BaseModel):
    """Partial threshold update."""

    thresholds: dict[str, Any] = Field(
        ...,
        description="Metric name to {warning, critical} bounds to change",
    )


class ThresholdUpdateResponse(BaseModel):
    """Response model after a threshold update."""

    message: str = Field(..., description="Outcome message")
    thresholds: dict[str, dict[str, float]] = Field(..., description="Thresholds now in effect")


# ── Alert settings ───────────────────────────────────


class AlertSettingsModel(BaseModel):
    """Workspace notification preferences."""

    email_notifications_enabled: bool = Field(default=False, description="Send alerts by email")
    contact_email: str | None = Field(default=None, description="Email recipient")
    notification_severities: list[str] = Field(
        default_factory=list,
        description="Severities that notify",
    )
    notification_server_ids: list[str] | None = Field(
        default=None,
        description="Servers that notify (null = all)",
    )
    browser_notifications_enabled: bool = Field(default=False, description="Push to the browser")
    browser_notification_severities: list[str] = Field(
        default_factory=list,
        description="Severities pushed to the browser",
    )


class AlertSettingsResponse(BaseModel):
    """Response model for workspace notification settings."""

    settings: AlertSettingsModel = Field(..., description="Current settings")


class AlertSettingsUpdateRequest(BaseModel):
    """Partial notification settings update. Omitted fields are unchanged."""

    model_config = ConfigDict(extra="forbid")

    email_notifications_enabled: bool | None = None
    contact_email: str | None = None
    notification_severities: list[str] | None = None
    notification_server_ids: list[str] | None = None
    browser_notifications_enabled: bool | None = None
    browser_notification_severities: list[str] | None = None
