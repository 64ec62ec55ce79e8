"""Event Tracker: ingest one stream event.

Scores the event, appends it (with its analysis) to the audit log, applies
the aggregate increment and remembers it for future fraud lookups.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

from royalty_pipeline.application.dtos.aggregation import BucketDelta
from royalty_pipeline.application.dtos.stream_event import RecordResult, StreamEventRecord
from royalty_pipeline.application.interfaces.repositories import IUnitOfWork
from royalty_pipeline.application.interfaces.services import (
    IAggregationStore,
    IEventPublisher,
)
from royalty_pipeline.application.services.fraud_analyzer import (
    DEFAULT_POLICY,
    FraudPolicy,
    analyze,
)
from royalty_pipeline.domain.entities import FraudAnalysisResult, StreamEvent
from royalty_pipeline.domain.enums import FraudVerdict
from royalty_pipeline.domain.exceptions import (
    DuplicateEventError,
    IngestionOverloadedError,
    TransientStoreError,
    WindowSealedError,
)
from royalty_pipeline.domain.value_objects import AggregationWindow
from royalty_pipeline.shared.telemetry.logging import get_logger
from royalty_pipeline.shared.telemetry.metrics import (
    AGGREGATE_INCREMENT_FAILURES_TOTAL,
    FRAUD_HISTORY_DEGRADED_TOTAL,
    STREAM_EVENTS_DUPLICATE_TOTAL,
    STREAM_EVENTS_LATE_TOTAL,
    STREAM_EVENTS_RECORDED_TOTAL,
)
from royalty_pipeline.shared.telemetry.tracing import add_span_attributes, traced
from royalty_pipeline.shared.utils.datetime import utc_now

logger = get_logger(__name__)


def delta_for(event: StreamEvent, analysis: FraudAnalysisResult) -> BucketDelta | None:
    """Aggregate increment for a verdict; None for REJECTED plays."""
    if analysis.verdict == FraudVerdict.CLEAN:
        return BucketDelta(valid=1, duration_ms=event.duration_ms)
    if analysis.verdict == FraudVerdict.SUSPICIOUS:
        return BucketDelta(flagged=1, duration_ms=event.duration_ms)
    return None


class EventTracker:
    """Records stream events (ingestion path).

    At most max_in_flight record() calls run at once; callers that cannot
    get a slot within acquire_timeout_seconds get IngestionOverloadedError.
    """

    def __init__(
        self,
        store: IAggregationStore,
        uow_factory: Callable[[], IUnitOfWork],
        publisher: IEventPublisher | None = None,
        policy: FraudPolicy = DEFAULT_POLICY,
        *,
        window_seconds: int = 3600,
        grace_seconds: int = 300,
        max_clock_skew_seconds: int = 120,
        history_timeout_seconds: float = 0.25,
        persistence_timeout_seconds: float = 5.0,
        increment_max_attempts: int = 3,
        increment_backoff_seconds: float = 0.05,
        max_in_flight: int = 256,
        acquire_timeout_seconds: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.uow_factory = uow_factory
        self.publisher = publisher
        self.policy = policy
        self.window_seconds = window_seconds
        self.grace_seconds = grace_seconds
        self.max_clock_skew_seconds = max_clock_skew_seconds
        self.history_timeout_seconds = history_timeout_seconds
        self.persistence_timeout_seconds = persistence_timeout_seconds
        self.increment_max_attempts = max(1, increment_max_attempts)
        self.increment_backoff_seconds = increment_backoff_seconds
        self.max_in_flight = max_in_flight
        self.acquire_timeout_seconds = acquire_timeout_seconds
        self._clock = clock
        self._slots = asyncio.Semaphore(max_in_flight)

    @traced("event_tracker.record")
    async def record(self, event: StreamEvent) -> RecordResult:
        """Record one event. Raises ValidationError, DuplicateEventError or TransientStoreError."""
        try:
            await asyncio.wait_for(
                self._slots.acquire(), timeout=self.acquire_timeout_seconds
            )
        except TimeoutError:
            logger.warning(
                "Ingestion overloaded: no slot within %.2fs (max_in_flight=%d)",
                self.acquire_timeout_seconds,
                self.max_in_flight,
            )
            raise IngestionOverloadedError(self.max_in_flight)
        try:
            return await self._record(event)
        finally:
            self._slots.release()

    async def _record(self, event: StreamEvent) -> RecordResult:
        now = self._clock()
        event.ensure_not_in_future(now, self.max_clock_skew_seconds)
        window = AggregationWindow.containing(event.timestamp, self.window_seconds)

        async with self.uow_factory() as uow:
            if await uow.stream_events.exists(event.event_id):
                STREAM_EVENTS_DUPLICATE_TOTAL.inc()
                raise DuplicateEventError(event.event_id)

        history = await self._load_history(event)
        analysis = analyze(event, history, self.policy)
        late = window.is_closed(now, self.grace_seconds) or await self._is_sealed(window)

        record = StreamEventRecord(
            event=event,
            analysis=analysis,
            window_start=window.start,
            late=late,
            recorded_at=now,
        )
        await self._append(record)
        STREAM_EVENTS_RECORDED_TOTAL.labels(verdict=analysis.verdict.value).inc()

        aggregated = False
        delta = delta_for(event, analysis)
        if not late and delta is not None:
            try:
                aggregated = await self._increment(event, window, delta)
            except WindowSealedError:
                late = True
                logger.warning(
                    "Window %s sealed while recording event %s; excluded from aggregates",
                    window.start.isoformat(),
                    event.event_id,
                )
        if late:
            STREAM_EVENTS_LATE_TOTAL.inc()
            logger.info(
                "Late stream event %s for window %s (verdict=%s)",
                event.event_id,
                window.start.isoformat(),
                analysis.verdict.value,
            )

        await self._remember(event)
        await self._publish(event, analysis, late)

        add_span_attributes(
            event_id=event.event_id, artist_id=event.artist_id, status=analysis.verdict.value
        )
        return RecordResult(
            event_id=event.event_id,
            accepted=analysis.verdict != FraudVerdict.REJECTED,
            verdict=analysis.verdict,
            score=analysis.score,
            flags=tuple(analysis.sorted_flags()),
            late=late,
            aggregated=aggregated,
        )

    async def _load_history(self, event: StreamEvent) -> list[StreamEvent]:
        try:
            return await asyncio.wait_for(
                self.store.recent_history(
                    event.listener_id,
                    event.device_id,
                    until=event.timestamp,
                    lookback_seconds=self.policy.lookback_seconds,
                ),
                timeout=self.history_timeout_seconds,
            )
        except (TimeoutError, TransientStoreError) as e:
            FRAUD_HISTORY_DEGRADED_TOTAL.inc()
            logger.warning(
                "History lookup degraded for event %s (listener=%s): %s; scoring without history",
                event.event_id,
                event.listener_id,
                str(e) or type(e).__name__,
            )
            return []

    async def _is_sealed(self, window: AggregationWindow) -> bool:
        try:
            return await self.store.is_sealed(window.start)
        except TransientStoreError as e:
            # The increment re-checks the seal atomically.
            logger.warning("Seal check failed for window %s: %s", window.start.isoformat(), e)
            return False

    async def _append(self, record: StreamEventRecord) -> None:
        async def _write() -> None:
            async with self.uow_factory() as uow:
                await uow.stream_events.append(record)

        try:
            await asyncio.wait_for(_write(), timeout=self.persistence_timeout_seconds)
        except TimeoutError:
            raise TransientStoreError(
                "Timed out appending stream event to the audit log",
                store="event_log",
                details={"event_id": record.event.event_id},
            )
        except DuplicateEventError:
            STREAM_EVENTS_DUPLICATE_TOTAL.inc()
            raise

    async def _increment(
        self, event: StreamEvent, window: AggregationWindow, delta: BucketDelta
    ) -> bool:
        """Apply delta with bounded exponential backoff. False when every attempt failed."""
        for attempt in range(1, self.increment_max_attempts + 1):
            try:
                await self.store.increment(
                    event.artist_id, event.track_id, window.start, delta
                )
                return True
            except TransientStoreError as e:
                if attempt == self.increment_max_attempts:
                    AGGREGATE_INCREMENT_FAILURES_TOTAL.inc()
                    logger.error(
                        "Aggregate increment failed after %d attempts for event %s "
                        "(artist=%s track=%s window=%s); event is in the audit log, rebuild the window",
                        attempt,
                        event.event_id,
                        event.artist_id,
                        event.track_id,
                        window.start.isoformat(),
                    )
                    return False
                delay = self.increment_backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "Aggregate increment attempt %d failed for event %s: %s; retrying in %.3fs",
                    attempt,
                    event.event_id,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)
        return False

    async def _remember(self, event: StreamEvent) -> None:
        try:
            await self.store.remember(event)
        except TransientStoreError as e:
            logger.warning("Could not remember event %s in history: %s", event.event_id, e)

    async def _publish(
        self, event: StreamEvent, analysis: FraudAnalysisResult, late: bool
    ) -> None:
        if self.publisher is None:
            return
        if not await self.publisher.publish_recorded(event, analysis, late):
            logger.warning("Recorded-event notification not published for %s", event.event_id)
