"""Service interfaces (ports): aggregation store, event publisher, payout gateway."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from royalty_pipeline.application.dtos.aggregation import AggregateBucket, BucketDelta
    from royalty_pipeline.application.dtos.royalty import PayoutSubmission, StatementResult
    from royalty_pipeline.domain.entities import FraudAnalysisResult, StreamEvent


class IAggregationStore(Protocol):
    """Windowed counters keyed by (artist_id, track_id, window_start).

    increment is atomic per key and fails with WindowSealedError once the
    window is sealed; seal is idempotent and linearizable with increments.
    Unavailability surfaces as TransientStoreError.
    """

    async def increment(
        self,
        artist_id: str,
        track_id: str,
        window_start: datetime,
        delta: BucketDelta,
    ) -> None:
        """Add delta to the bucket."""

    async def seal(
        self, window_start: datetime, window_end: datetime
    ) -> list[AggregateBucket]:
        """Seal every window starting in [window_start, window_end) and return their buckets."""

    async def get(
        self, artist_id: str, track_id: str, window_start: datetime
    ) -> AggregateBucket | None:
        """Return the current (open or sealed) bucket, or None."""

    async def is_sealed(self, window_start: datetime) -> bool:
        """Return whether the window was sealed."""

    async def close_window(self, window_start: datetime) -> None:
        """Fence the window: later increments raise WindowSealedError. Idempotent."""

    async def replace_window(
        self, window_start: datetime, buckets: list[AggregateBucket]
    ) -> None:
        """Atomically replace an unsealed window's buckets (rebuild). WindowSealedError if sealed."""

    async def open_window_starts(self, before: datetime | None = None) -> list[datetime]:
        """Return starts of windows that hold counters but are not sealed."""

    async def remember(self, event: StreamEvent) -> None:
        """Add the event to the bounded listener and device history."""

    async def recent_history(
        self,
        listener_id: str,
        device_id: str,
        until: datetime,
        lookback_seconds: int,
    ) -> list[StreamEvent]:
        """Return remembered events for the listener or device in [until - lookback, until], oldest first."""


class IEventPublisher(Protocol):
    """Publishes event-recorded notifications for downstream fraud alerting."""

    async def publish_recorded(
        self, event: StreamEvent, analysis: FraudAnalysisResult, late: bool
    ) -> bool:
        """Publish; return False (never raise) when the channel is unavailable."""


class IPayoutGateway(Protocol):
    """External payout processor boundary."""

    async def submit_payout(self, statement: StatementResult) -> PayoutSubmission:
        """Hand an APPROVED statement to the processor."""
