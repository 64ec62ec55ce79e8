"""Stream event repository. Append-only audit log; returns application DTOs."""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from royalty_pipeline.application.dtos.stream_event import StreamEventRecord
from royalty_pipeline.domain.entities import FraudAnalysisResult, StreamEvent
from royalty_pipeline.domain.enums import FraudFlag, FraudVerdict, SubscriptionTier
from royalty_pipeline.domain.exceptions import DuplicateEventError
from royalty_pipeline.infrastructure.persistence.models.stream_event import StreamEventLog
from royalty_pipeline.infrastructure.persistence.repositories.base import BaseRepository


def _row_to_record(row: StreamEventLog) -> StreamEventRecord:
    """Map ORM StreamEventLog to the application StreamEventRecord."""
    event = StreamEvent(
        event_id=row.event_id,
        track_id=row.track_id,
        artist_id=row.artist_id,
        listener_id=row.listener_id,
        device_id=row.device_id,
        timestamp=row.event_timestamp,
        duration_ms=row.duration_ms,
        subscription_tier=SubscriptionTier(row.subscription_tier),
        source_ip=row.source_ip,
        track_duration_ms=row.track_duration_ms,
    )
    analysis = FraudAnalysisResult(
        event_id=row.event_id,
        score=row.fraud_score,
        flags=frozenset(FraudFlag(f) for f in row.fraud_flags or []),
        verdict=FraudVerdict(row.verdict),
    )
    return StreamEventRecord(
        event=event,
        analysis=analysis,
        window_start=row.window_start,
        late=row.late,
        recorded_at=row.recorded_at,
    )


def _record_to_row(record: StreamEventRecord) -> StreamEventLog:
    event, analysis = record.event, record.analysis
    return StreamEventLog(
        event_id=event.event_id,
        track_id=event.track_id,
        artist_id=event.artist_id,
        listener_id=event.listener_id,
        device_id=event.device_id,
        event_timestamp=event.timestamp,
        duration_ms=event.duration_ms,
        track_duration_ms=event.track_duration_ms,
        subscription_tier=event.subscription_tier.value,
        source_ip=event.source_ip,
        window_start=record.window_start,
        fraud_score=analysis.score,
        fraud_flags=analysis.sorted_flags(),
        verdict=analysis.verdict.value,
        late=record.late,
    )


class StreamEventRepository(BaseRepository[StreamEventLog]):
    """Stream events are immutable after creation."""

    def __init__(self, db: AsyncSession) -> None:
        super().__init__(db, StreamEventLog)

    async def exists(self, event_id: str) -> bool:
        result = await self.db.execute(
            select(StreamEventLog.event_id).where(StreamEventLog.event_id == event_id)
        )
        return result.scalar_one_or_none() is not None

    async def append(self, record: StreamEventRecord) -> None:
        """Insert one event. Raises DuplicateEventError on a repeated event_id."""
        try:
            async with self.db.begin_nested():
                await self.create(_record_to_row(record))
        except IntegrityError:
            raise DuplicateEventError(record.event.event_id)

    async def list_for_window(self, window_start: datetime) -> list[StreamEventRecord]:
        result = await self.db.execute(
            select(StreamEventLog)
            .where(
                StreamEventLog.window_start == window_start,
                StreamEventLog.late.is_(False),
            )
            .order_by(StreamEventLog.event_timestamp, StreamEventLog.event_id)
        )
        return [_row_to_record(row) for row in result.scalars().all()]

    async def count_by_verdict(
        self, artist_id: str, since: datetime, until: datetime
    ) -> dict[str, int]:
        result = await self.db.execute(
            select(StreamEventLog.verdict, StreamEventLog.late, func.count())
            .where(
                StreamEventLog.artist_id == artist_id,
                StreamEventLog.event_timestamp >= since,
                StreamEventLog.event_timestamp < until,
            )
            .group_by(StreamEventLog.verdict, StreamEventLog.late)
        )
        counts: dict[str, int] = {v: 0 for v in FraudVerdict.values()}
        counts["late"] = 0
        for verdict, late, count in result.all():
            counts[verdict] = counts.get(verdict, 0) + count
            if late:
                counts["late"] += count
        return counts
