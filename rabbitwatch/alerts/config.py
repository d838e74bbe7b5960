"""Alert service configuration.

Controls polling cadence, check concurrency, and resolved-alert
retention. All settings can be overridden via ``ALERTS_*``
environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AlertConfig(BaseSettings):
    """Configuration for the alert detection and lifecycle system."""

    model_config = SettingsConfigDict(
        env_prefix="ALERTS_",
        case_sensitive=False,
        extra="ignore",
    )

    check_interval_seconds: float = Field(
        default=60.0,
        ge=1.0,
        description="Seconds between detection cycles for each server",
    )
    check_concurrency: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum servers checked concurrently",
    )
    resolved_retention_days: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Days a resolved alert is kept before being purged",
    )
    health_issue_limit: int = Field(
        default=5,
        ge=1,
        description="Maximum issue strings in a cluster health summary",
    )
