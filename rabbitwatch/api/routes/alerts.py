"""Alert endpoints for active, resolved and health views of a server."""

import time

from fastapi import APIRouter, Depends, HTTPException, Query, status
import structlog

from rabbitwatch.alerts.collaborators import ServerDirectory
from rabbitwatch.alerts.errors import AlertingError
from rabbitwatch.alerts.query import AlertQueryService
from rabbitwatch.alerts.schemas import VALID_CATEGORIES, VALID_SEVERITIES
from rabbitwatch.alerts.thresholds import ThresholdStore
from rabbitwatch.api.auth import verify_api_key
from rabbitwatch.api.dependencies import get_directory, get_query_service, get_threshold_store
from rabbitwatch.api.models import (
    AlertItem,
    ClusterHealthResponse,
    ErrorResponse,
    HealthCheckResponse,
    ResolvedAlertsResponse,
    ServerAlertsResponse,
)

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/workspaces/{workspace_id}/servers/{server_id}")

_ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Invalid API key"},
    404: {"model": ErrorResponse, "description": "Server not found"},
    500: {"model": ErrorResponse, "description": "Server error"},
}


def _validate_filters(severity: str | None, category: str | None) -> None:
    if severity and severity not in VALID_SEVERITIES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=(
                f"Invalid severity {severity!r}. "
                f"Must be one of: {sorted(VALID_SEVERITIES)}"
            ),
        )

    if category and category not in VALID_CATEGORIES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=(
                f"Invalid category {category!r}. "
                f"Must be one of: {sorted(VALID_CATEGORIES)}"
            ),
        )


@router.get(
    "/alerts",
    response_model=ServerAlertsResponse,
    responses={
        **_ERROR_RESPONSES,
        422: {"model": ErrorResponse, "description": "Invalid filter parameter"},
    },
    summary="List active alerts",
    description=(
        "Active alerts of a server scoped to a virtual host, with optional "
        "filtering by severity, category and resolved status. Ordered by "
        "most recent first. Free-plan workspaces receive counts only."
    ),
)
async def list_alerts(
    workspace_id: str,
    server_id: str,
    vhost: str = Query(..., description="Virtual host scope for queue alerts"),
    severity: str | None = Query(
        default=None,
        description="Filter by severity: critical, warning, info",
    ),
    category: str | None = Query(
        default=None,
        description="Filter by category: memory, disk, connection, queue, node, performance",
    ),
    resolved: bool | None = Query(default=None, description="Filter by resolved status"),
    limit: int | None = Query(default=None, ge=1, le=500, description="Maximum alerts to return"),
    offset: int = Query(default=0, ge=0, description="Offset for pagination"),
    api_key: str = Depends(verify_api_key),
    directory: ServerDirectory = Depends(get_directory),
    query_service: AlertQueryService = Depends(get_query_service),
    threshold_store: ThresholdStore = Depends(get_threshold_store),
) -> ServerAlertsResponse:
    start_time = time.perf_counter()
    _validate_filters(severity, category)

    try:
        server = await directory.get_server(server_id, workspace_id)
        page = await query_service.get_server_alerts(
            server_id=server.id,
            server_name=server.name,
            workspace_id=workspace_id,
            vhost=vhost,
            severity=severity,
            category=category,
            resolved=resolved,
            limit=limit,
            offset=offset,
        )
        thresholds = await threshold_store.get_thresholds(workspace_id)
    except AlertingError:
        raise
    except Exception as e:
        logger.error("Failed to list alerts", server_id=server_id, error=str(e), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get alerts",
        )

    latency_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        "Alerts listed",
        server_id=server_id,
        total=page.total,
        returned=len(page.alerts),
        severity=severity,
        category=category,
        latency_ms=round(latency_ms, 2),
    )

    return ServerAlertsResponse(
        alerts=[AlertItem(**a.to_dict()) for a in page.alerts],
        summary=page.summary.to_dict(),
        thresholds=thresholds.to_dict(),
        total=page.total,
        timestamp=page.timestamp.isoformat(),
    )


@router.get(
    "/alerts/resolved",
    response_model=ResolvedAlertsResponse,
    responses={
        **_ERROR_RESPONSES,
        422: {"model": ErrorResponse, "description": "Invalid filter parameter"},
    },
    summary="List resolved alerts",
    description="Resolved alerts of a server within the retention window, newest first.",
)
async def list_resolved_alerts(
    workspace_id: str,
    server_id: str,
    vhost: str | None = Query(default=None, description="Virtual host scope for queue alerts"),
    severity: str | None = Query(default=None, description="Filter by severity"),
    category: str | None = Query(default=None, description="Filter by category"),
    limit: int | None = Query(default=None, ge=1, le=500, description="Maximum alerts to return"),
    offset: int = Query(default=0, ge=0, description="Offset for pagination"),
    api_key: str = Depends(verify_api_key),
    directory: ServerDirectory = Depends(get_directory),
    query_service: AlertQueryService = Depends(get_query_service),
) -> ResolvedAlertsResponse:
    _validate_filters(severity, category)

    try:
        await directory.get_server(server_id, workspace_id)
        page = await query_service.get_resolved_alerts(
            server_id=server_id,
            workspace_id=workspace_id,
            limit=limit,
            offset=offset,
            severity=severity,
            category=category,
            vhost=vhost,
        )
    except AlertingError:
        raise
    except Exception as e:
        logger.error(
            "Failed to list resolved alerts", server_id=server_id, error=str(e), exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get resolved alerts",
        )

    return ResolvedAlertsResponse(
        alerts=[AlertItem(**a.to_dict()) for a in page.alerts],
        total=page.total,
        timestamp=page.timestamp.isoformat(),
    )


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    responses=_ERROR_RESPONSES,
    summary="Server health check",
    description=(
        "Probe the server directly: connectivity, nodes, memory, disk and "
        "queues, independent of the alert pipeline."
    ),
)
async def get_server_health(
    workspace_id: str,
    server_id: str,
    api_key: str = Depends(verify_api_key),
    query_service: AlertQueryService = Depends(get_query_service),
) -> HealthCheckResponse:
    health = await query_service.get_health_check(server_id, workspace_id)
    logger.info("Health check", server_id=server_id, overall=health.overall)
    return HealthCheckResponse(health=health.to_dict())


@router.get(
    "/cluster-health",
    response_model=ClusterHealthResponse,
    responses=_ERROR_RESPONSES,
    summary="Cluster health from active alerts",
)
async def get_cluster_health(
    workspace_id: str,
    server_id: str,
    api_key: str = Depends(verify_api_key),
    directory: ServerDirectory = Depends(get_directory),
    query_service: AlertQueryService = Depends(get_query_service),
) -> ClusterHealthResponse:
    await directory.get_server(server_id, workspace_id)
    summary = await query_service.get_cluster_health(server_id, workspace_id)
    return ClusterHealthResponse(**summary.to_dict())
