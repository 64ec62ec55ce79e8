"""Reads of sealed aggregate buckets (the durable query boundary)."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

from royalty_pipeline.application.dtos.aggregation import AggregateBucket
from royalty_pipeline.application.interfaces.repositories import IUnitOfWork
from royalty_pipeline.domain.exceptions import ResourceNotFoundException, ValidationError
from royalty_pipeline.shared.utils.datetime import ensure_utc

MAX_QUERY_RANGE = timedelta(days=92)


class AggregateQueryService:
    def __init__(self, uow_factory: Callable[[], IUnitOfWork]) -> None:
        self.uow_factory = uow_factory

    async def get_bucket(
        self, artist_id: str, track_id: str, window_start: datetime
    ) -> AggregateBucket:
        async with self.uow_factory() as uow:
            bucket = await uow.buckets.get(artist_id, track_id, ensure_utc(window_start))
        if bucket is None:
            raise ResourceNotFoundException(
                "aggregate_bucket", f"{artist_id}/{track_id}@{window_start.isoformat()}"
            )
        return bucket

    async def list_buckets(
        self,
        start: datetime,
        end: datetime,
        artist_id: str | None = None,
        track_id: str | None = None,
    ) -> list[AggregateBucket]:
        """Sealed buckets whose window starts in [start, end)."""
        start, end = ensure_utc(start), ensure_utc(end)
        if start >= end:
            raise ValidationError("start must be before end", field="start")
        if end - start > MAX_QUERY_RANGE:
            raise ValidationError(
                f"Range cannot exceed {MAX_QUERY_RANGE.days} days", field="end"
            )
        async with self.uow_factory() as uow:
            return await uow.buckets.list_for_period(start, end, artist_id, track_id)
