"""Workspace notification settings endpoints."""

from fastapi import APIRouter, Depends
import structlog

from rabbitwatch.alerts.notification_settings import NotificationSettingsStore
from rabbitwatch.api.auth import get_current_user_id, verify_api_key
from rabbitwatch.api.dependencies import get_settings_store
from rabbitwatch.api.models import (
    AlertSettingsResponse,
    AlertSettingsUpdateRequest,
    ErrorResponse,
    ValidationErrorResponse,
)

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/workspaces/{workspace_id}")

# Fields where an explicit null means "reset", not "leave unchanged"
_NULLABLE_FIELDS = frozenset({
    "contact_email",
    "notification_severities",
    "notification_server_ids",
    "browser_notification_severities",
})


@router.get(
    "/alert-settings",
    response_model=AlertSettingsResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid API key"}},
    summary="Get alert notification settings",
)
async def get_alert_settings(
    workspace_id: str,
    api_key: str = Depends(verify_api_key),
    store: NotificationSettingsStore = Depends(get_settings_store),
) -> AlertSettingsResponse:
    settings = await store.get_settings(workspace_id)
    return AlertSettingsResponse(settings=settings.to_dict())


@router.put(
    "/alert-settings",
    response_model=AlertSettingsResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Missing API key or user"},
        403: {"model": ErrorResponse, "description": "Caller is not the workspace owner"},
        422: {"model": ValidationErrorResponse, "description": "Invalid settings"},
    },
    summary="Update alert notification settings",
    description="Partially update notification settings. Only the workspace owner may write.",
)
async def update_alert_settings(
    workspace_id: str,
    request: AlertSettingsUpdateRequest,
    api_key: str = Depends(verify_api_key),
    user_id: str = Depends(get_current_user_id),
    store: NotificationSettingsStore = Depends(get_settings_store),
) -> AlertSettingsResponse:
    partial = {
        name: value
        for name, value in request.model_dump(exclude_unset=True).items()
        if value is not None or name in _NULLABLE_FIELDS
    }
    settings = await store.update_settings(workspace_id, user_id, partial)
    logger.info(
        "Alert settings updated",
        workspace_id=workspace_id,
        user_id=user_id,
        fields=sorted(partial),
    )
    return AlertSettingsResponse(settings=settings.to_dict())
