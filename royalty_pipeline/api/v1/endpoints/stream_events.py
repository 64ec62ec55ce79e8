"""Stream event ingestion: thin route delegating to the EventTracker."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from royalty_pipeline.api.v1.dependencies import get_event_tracker
from royalty_pipeline.application.use_cases import EventTracker
from royalty_pipeline.core.limiter import limit_ingestion
from royalty_pipeline.domain.entities import StreamEvent
from royalty_pipeline.schemas.stream_event import (
    StreamEventCreateRequest,
    StreamEventRecordedResponse,
)
from royalty_pipeline.shared.utils.generators import generate_cuid

router = APIRouter()


@router.post(
    "",
    response_model=StreamEventRecordedResponse,
    status_code=201,
    responses={
        409: {"description": "Duplicate event_id"},
        503: {"description": "Store unavailable or ingestion overloaded; retry"},
    },
)
@limit_ingestion
async def record_stream_event(
    request: Request,
    body: StreamEventCreateRequest,
    tracker: Annotated[EventTracker, Depends(get_event_tracker)],
):
    """Score the play, log it and count it toward the artist's aggregates."""
    data = body.model_dump()
    if data["event_id"] is None:
        data["event_id"] = generate_cuid()
    event = StreamEvent(**data)
    result = await tracker.record(event)
    return StreamEventRecordedResponse(
        event_id=result.event_id,
        accepted=result.accepted,
        verdict=result.verdict,
        score=result.score,
        flags=list(result.flags),
        late=result.late,
        aggregated=result.aggregated,
    )
