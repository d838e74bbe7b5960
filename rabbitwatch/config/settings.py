"""Application settings using Pydantic Settings for environment-based configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the rabbitwatch application.

    All settings can be overridden via environment variables.
    Prefix is not used to allow standard env var names (e.g., SMTP_HOST).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # API server
    api_host: str = "0.0.0.0"
    api_port: int = 8001
    api_keys: str | None = None  # Comma-separated; unset = dev mode
    cors_origins: str = "http://localhost:3000"
    cors_allow_credentials: bool = True
    frontend_url: str | None = None  # Used for "View Alerts" links

    # Email (SMTP) transport
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_from: str = "alerts@rabbitwatch.local"

    # RabbitMQ Management API (single-server deployments)
    management_url: str | None = None
    management_username: str = "guest"
    management_password: str = "guest"
    management_timeout_seconds: float = Field(default=10.0, gt=0.0, le=120.0)

    # Workspace/server registered at startup when management_url is set
    default_workspace_id: str = "default"
    default_workspace_name: str = "Default"
    default_owner_id: str = "admin"
    default_owner_plan: str = "ENTERPRISE"
    default_server_id: str = "default"
    default_server_name: str = "rabbitmq"

    # Alert monitor loop inside the API process
    monitor_enabled: bool = True

    # Observability
    metrics_port: int = 8000

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def smtp_configured(self) -> bool:
        """Check if an SMTP relay is configured."""
        return self.smtp_host is not None

    @property
    def management_configured(self) -> bool:
        """Check if a RabbitMQ Management API endpoint is configured."""
        return self.management_url is not None


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    Clear cache with get_settings.cache_clear() if needed.
    """
    return Settings()
