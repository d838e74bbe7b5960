"""
Dependency injection for FastAPI endpoints.

All alerting components share one in-memory state per process. They are
built on first use and torn down by ``cleanup_dependencies`` on shutdown.
"""

from dataclasses import dataclass

from rabbitwatch.alerts.collaborators import InMemoryDirectory, ServerInfo, WorkspaceInfo
from rabbitwatch.alerts.config import AlertConfig
from rabbitwatch.alerts.dispatcher import NotificationConfig, NotificationDispatcher
from rabbitwatch.alerts.health import HealthChecker
from rabbitwatch.alerts.lifecycle import AlertLifecycleTracker, AlertStore
from rabbitwatch.alerts.monitor import AlertMonitor
from rabbitwatch.alerts.notification_settings import NotificationSettingsStore
from rabbitwatch.alerts.query import AlertQueryService
from rabbitwatch.alerts.service import AlertService
from rabbitwatch.alerts.thresholds import ThresholdStore
from rabbitwatch.config.settings import Settings, get_settings
from rabbitwatch.sources.management import ManagementApiSource


@dataclass
class AlertingComponents:
    """Wired alerting components sharing one directory and store."""

    directory: InMemoryDirectory
    threshold_store: ThresholdStore
    settings_store: NotificationSettingsStore
    query_service: AlertQueryService
    alert_service: AlertService
    monitor: AlertMonitor


def bootstrap_directory(settings: Settings) -> InMemoryDirectory:
    """Directory seeded with the configured default workspace and server."""
    directory = InMemoryDirectory()
    if settings.management_configured:
        directory.add_workspace(
            WorkspaceInfo(
                id=settings.default_workspace_id,
                name=settings.default_workspace_name,
                owner_id=settings.default_owner_id,
            ),
            owner_plan=settings.default_owner_plan,
        )
        directory.add_server(ServerInfo(
            id=settings.default_server_id,
            name=settings.default_server_name,
            workspace_id=settings.default_workspace_id,
        ))
    return directory


def build_components(
    settings: Settings | None = None,
    directory: InMemoryDirectory | None = None,
    metrics_source=None,
) -> AlertingComponents:
    """
    Wire the alerting components.

    Args:
        settings: Application settings (defaults to cached settings)
        directory: Server directory and plan provider
        metrics_source: Source used to poll servers

    Returns:
        AlertingComponents sharing one alert store
    """
    settings = settings or get_settings()
    alert_config = AlertConfig()
    directory = directory or bootstrap_directory(settings)
    metrics_source = metrics_source or ManagementApiSource(
        default_url=settings.management_url,
        username=settings.management_username,
        password=settings.management_password,
        timeout=settings.management_timeout_seconds,
    )

    alert_store = AlertStore()
    threshold_store = ThresholdStore(directory)
    settings_store = NotificationSettingsStore(directory)
    tracker = AlertLifecycleTracker(alert_store, alert_config)
    health_checker = HealthChecker(metrics_source, threshold_store)

    alert_service = AlertService(
        metrics_source=metrics_source,
        directory=directory,
        threshold_store=threshold_store,
        tracker=tracker,
        settings_store=settings_store,
        dispatcher=NotificationDispatcher(NotificationConfig()),
        settings=settings,
    )

    return AlertingComponents(
        directory=directory,
        threshold_store=threshold_store,
        settings_store=settings_store,
        query_service=AlertQueryService(
            alert_store, directory, health_checker, alert_config, plan_provider=directory,
        ),
        alert_service=alert_service,
        monitor=AlertMonitor(alert_service, directory, alert_config),
    )


# Global component instances (initialized on first request)
_components: AlertingComponents | None = None


def get_components() -> AlertingComponents:
    global _components
    if _components is None:
        _components = build_components()
    return _components


async def get_directory() -> InMemoryDirectory:
    return get_components().directory


async def get_threshold_store() -> ThresholdStore:
    return get_components().threshold_store


async def get_settings_store() -> NotificationSettingsStore:
    return get_components().settings_store


async def get_query_service() -> AlertQueryService:
    return get_components().query_service


async def get_alert_service() -> AlertService:
    return get_components().alert_service


async def get_alert_monitor() -> AlertMonitor:
    return get_components().monitor


async def cleanup_dependencies() -> None:
    """Stop the monitor and drop global state on shutdown."""
    global _components

    if _components is not None:
        await _components.monitor.stop()
        _components = None
