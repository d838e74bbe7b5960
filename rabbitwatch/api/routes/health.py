"""
Service liveness endpoint.
"""

from fastapi import APIRouter, Depends

from rabbitwatch import __version__
from rabbitwatch.alerts.collaborators import ServerDirectory
from rabbitwatch.alerts.monitor import AlertMonitor
from rabbitwatch.api.dependencies import get_alert_monitor, get_directory
from rabbitwatch.api.models import HealthResponse

router = APIRouter()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health",
    description="Liveness of the alerting service. Does not require an API key.",
)
async def health_check(
    directory: ServerDirectory = Depends(get_directory),
    monitor: AlertMonitor = Depends(get_alert_monitor),
) -> HealthResponse:
    servers = await directory.list_servers()
    return HealthResponse(
        status="healthy",
        version=__version__,
        monitor_running=monitor.is_running,
        servers=len(servers),
    )
