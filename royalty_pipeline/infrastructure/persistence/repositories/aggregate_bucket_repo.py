"""Sealed aggregate snapshot repository (query boundary for sealed buckets)."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from royalty_pipeline.application.dtos.aggregation import AggregateBucket
from royalty_pipeline.infrastructure.persistence.models.aggregate_bucket import (
    AggregateBucketSnapshot,
    SealedWindow,
)
from royalty_pipeline.infrastructure.persistence.repositories.base import BaseRepository
from royalty_pipeline.shared.utils.generators import generate_cuid


def _snapshot_to_bucket(row: AggregateBucketSnapshot) -> AggregateBucket:
    return AggregateBucket(
        artist_id=row.artist_id,
        track_id=row.track_id,
        window_start=row.window_start,
        window_end=row.window_end,
        valid_play_count=row.valid_play_count,
        flagged_play_count=row.flagged_play_count,
        total_duration_ms=row.total_duration_ms,
    )


class AggregateBucketRepository(BaseRepository[AggregateBucketSnapshot]):
    """Snapshots are written once per window (idempotent inserts) and never updated."""

    def __init__(self, db: AsyncSession) -> None:
        super().__init__(db, AggregateBucketSnapshot)

    async def save_snapshot(
        self,
        window_start: datetime,
        window_end: datetime,
        buckets: list[AggregateBucket],
        sealed_at: datetime,
    ) -> bool:
        """Insert the sealed_window row and its buckets; False when the window was stored already."""
        inserted = await self.db.execute(
            insert(SealedWindow)
            .values(
                window_start=window_start,
                window_end=window_end,
                bucket_count=len(buckets),
                sealed_at=sealed_at,
            )
            .on_conflict_do_nothing(index_elements=[SealedWindow.window_start])
            .returning(SealedWindow.window_start)
        )
        if inserted.scalar_one_or_none() is None:
            return False
        if buckets:
            await self.db.execute(
                insert(AggregateBucketSnapshot)
                .values(
                    [
                        {
                            "id": generate_cuid(),
                            "artist_id": b.artist_id,
                            "track_id": b.track_id,
                            "window_start": b.window_start,
                            "window_end": b.window_end,
                            "valid_play_count": b.valid_play_count,
                            "flagged_play_count": b.flagged_play_count,
                            "total_duration_ms": b.total_duration_ms,
                            "sealed_at": sealed_at,
                        }
                        for b in buckets
                    ]
                )
                .on_conflict_do_nothing(constraint="uq_aggregate_bucket_key")
            )
        return True

    async def is_window_sealed(self, window_start: datetime) -> bool:
        return await self.db.get(SealedWindow, window_start) is not None

    async def get(
        self, artist_id: str, track_id: str, window_start: datetime
    ) -> AggregateBucket | None:
        result = await self.db.execute(
            select(AggregateBucketSnapshot).where(
                AggregateBucketSnapshot.artist_id == artist_id,
                AggregateBucketSnapshot.track_id == track_id,
                AggregateBucketSnapshot.window_start == window_start,
            )
        )
        row = result.scalar_one_or_none()
        return _snapshot_to_bucket(row) if row else None

    async def list_for_period(
        self,
        period_start: datetime,
        period_end: datetime,
        artist_id: str | None = None,
        track_id: str | None = None,
    ) -> list[AggregateBucket]:
        query = select(AggregateBucketSnapshot).where(
            AggregateBucketSnapshot.window_start >= period_start,
            AggregateBucketSnapshot.window_start < period_end,
        )
        if artist_id is not None:
            query = query.where(AggregateBucketSnapshot.artist_id == artist_id)
        if track_id is not None:
            query = query.where(AggregateBucketSnapshot.track_id == track_id)
        result = await self.db.execute(
            query.order_by(
                AggregateBucketSnapshot.window_start,
                AggregateBucketSnapshot.artist_id,
                AggregateBucketSnapshot.track_id,
            )
        )
        return [_snapshot_to_bucket(row) for row in result.scalars().all()]

    async def list_artists_for_period(
        self, period_start: datetime, period_end: datetime
    ) -> list[str]:
        result = await self.db.execute(
            select(AggregateBucketSnapshot.artist_id)
            .where(
                AggregateBucketSnapshot.window_start >= period_start,
                AggregateBucketSnapshot.window_start < period_end,
            )
            .distinct()
            .order_by(AggregateBucketSnapshot.artist_id)
        )
        return list(result.scalars().all())
