"""Workspace alert threshold endpoints."""

from fastapi import APIRouter, Depends
import structlog

from rabbitwatch.alerts.thresholds import ThresholdStore
from rabbitwatch.api.auth import verify_api_key
from rabbitwatch.api.dependencies import get_threshold_store
from rabbitwatch.api.models import (
    ErrorResponse,
    ThresholdsResponse,
    ThresholdUpdateRequest,
    ThresholdUpdateResponse,
    ValidationErrorResponse,
)

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/workspaces/{workspace_id}")


@router.get(
    "/thresholds",
    response_model=ThresholdsResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Workspace not found"},
    },
    summary="Get alert thresholds",
    description="Thresholds in effect for the workspace, the defaults, and whether its plan allows edits.",
)
async def get_thresholds(
    workspace_id: str,
    api_key: str = Depends(verify_api_key),
    store: ThresholdStore = Depends(get_threshold_store),
) -> ThresholdsResponse:
    thresholds = await store.get_thresholds(workspace_id)
    can_modify = await store.can_modify(workspace_id)
    return ThresholdsResponse(
        thresholds=thresholds.to_dict(),
        can_modify=can_modify,
        defaults=store.get_defaults().to_dict(),
    )


@router.put(
    "/thresholds",
    response_model=ThresholdUpdateResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        403: {"model": ErrorResponse, "description": "Plan does not allow threshold edits"},
        404: {"model": ErrorResponse, "description": "Workspace not found"},
        422: {"model": ValidationErrorResponse, "description": "Invalid thresholds"},
    },
    summary="Update alert thresholds",
    description=(
        "Partially update the workspace thresholds. The merged result must keep "
        "every critical bound strictly worse than its warning bound."
    ),
)
async def update_thresholds(
    workspace_id: str,
    request: ThresholdUpdateRequest,
    api_key: str = Depends(verify_api_key),
    store: ThresholdStore = Depends(get_threshold_store),
) -> ThresholdUpdateResponse:
    updated = await store.update_thresholds(workspace_id, request.thresholds)
    logger.info(
        "Thresholds updated",
        workspace_id=workspace_id,
        metrics=sorted(request.thresholds),
    )
    return ThresholdUpdateResponse(
        message="Thresholds updated successfully",
        thresholds=updated.to_dict(),
    )
