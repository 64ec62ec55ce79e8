"""Sealed aggregate reads."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import AwareDatetime

from royalty_pipeline.api.v1.dependencies import get_aggregate_query_service
from royalty_pipeline.application.use_cases import AggregateQueryService
from royalty_pipeline.schemas.aggregation import AggregateBucketResponse

router = APIRouter()


@router.get("", response_model=list[AggregateBucketResponse])
async def list_aggregates(
    start: Annotated[AwareDatetime, Query(description="Inclusive window start lower bound")],
    end: Annotated[AwareDatetime, Query(description="Exclusive window start upper bound")],
    svc: Annotated[AggregateQueryService, Depends(get_aggregate_query_service)],
    artist_id: str | None = None,
    track_id: str | None = None,
):
    buckets = await svc.list_buckets(start, end, artist_id=artist_id, track_id=track_id)
    return [AggregateBucketResponse.model_validate(b) for b in buckets]


@router.get("/{artist_id}/{track_id}", response_model=AggregateBucketResponse)
async def get_aggregate(
    artist_id: str,
    track_id: str,
    window_start: Annotated[AwareDatetime, Query()],
    svc: Annotated[AggregateQueryService, Depends(get_aggregate_query_service)],
):
    """One sealed bucket; 404 until its window is sealed."""
    bucket = await svc.get_bucket(artist_id, track_id, window_start)
    return AggregateBucketResponse.model_validate(bucket)
