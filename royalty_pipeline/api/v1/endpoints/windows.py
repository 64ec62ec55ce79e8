"""Aggregation window administration: seal due windows, rebuild a closed window."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Request

from royalty_pipeline.api.v1.dependencies import get_rebuilder, get_sealing_service
from royalty_pipeline.application.use_cases import AggregateRebuilder, WindowSealingService
from royalty_pipeline.core.limiter import limit_admin_actions
from royalty_pipeline.schemas.aggregation import (
    RebuildWindowResponse,
    SealWindowsRequest,
    SealWindowsResponse,
)
from royalty_pipeline.schemas.common import ensure_aware_datetime

router = APIRouter()


@router.post("/seal", response_model=SealWindowsResponse)
@limit_admin_actions
async def seal_windows(
    request: Request,
    svc: Annotated[WindowSealingService, Depends(get_sealing_service)],
    body: SealWindowsRequest | None = None,
):
    """Seal every open window whose grace period has elapsed (idempotent)."""
    result = await svc.seal_due_windows(now=body.now if body else None)
    return SealWindowsResponse(
        sealed_windows=list(result.sealed_windows), bucket_count=result.bucket_count
    )


@router.post(
    "/{window_start}/rebuild",
    response_model=RebuildWindowResponse,
    responses={409: {"description": "Window still accepts events, or is already sealed"}},
)
@limit_admin_actions
async def rebuild_window(
    request: Request,
    window_start: datetime,
    svc: Annotated[AggregateRebuilder, Depends(get_rebuilder)],
):
    """Fence a closed window and recompute its counters from the stream event log."""
    result = await svc.rebuild_window(ensure_aware_datetime(window_start))
    return RebuildWindowResponse(
        window_start=result.window_start,
        events_replayed=result.events_replayed,
        bucket_count=result.bucket_count,
    )
