"""Rebuild a closed window's aggregates from the audit log."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

from royalty_pipeline.application.dtos.aggregation import AggregateBucket, RebuildResult
from royalty_pipeline.application.interfaces.repositories import IUnitOfWork
from royalty_pipeline.application.interfaces.services import IAggregationStore
from royalty_pipeline.application.use_cases.tracking.record_stream_event import delta_for
from royalty_pipeline.domain.exceptions import (
    ValidationError,
    WindowOpenError,
    WindowSealedError,
)
from royalty_pipeline.domain.value_objects import AggregationWindow
from royalty_pipeline.shared.telemetry.logging import get_logger
from royalty_pipeline.shared.utils.datetime import ensure_utc, utc_now

logger = get_logger(__name__)


class AggregateRebuilder:
    """Replays a window's logged events and atomically replaces its counters.

    A window is rebuilt only after its grace period, and the store fences it
    against ingestion before the log is read: every increment that landed is
    for an event already in the log, and none can land between the read and
    the replace.
    """

    def __init__(
        self,
        store: IAggregationStore,
        uow_factory: Callable[[], IUnitOfWork],
        *,
        window_seconds: int = 3600,
        grace_seconds: int = 300,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.uow_factory = uow_factory
        self.window_seconds = window_seconds
        self.grace_seconds = grace_seconds
        self._clock = clock

    def _window(self, window_start: datetime) -> AggregationWindow:
        try:
            return AggregationWindow(start=ensure_utc(window_start), size_seconds=self.window_seconds)
        except ValueError as e:
            raise ValidationError(str(e), field="window_start")

    async def rebuild_window(self, window_start: datetime) -> RebuildResult:
        """Recompute one closed, unsealed window.

        Raises WindowOpenError while the window still accepts events and
        WindowSealedError once it is sealed.
        """
        window = self._window(window_start)
        if not window.is_closed(self._clock(), self.grace_seconds):
            raise WindowOpenError(window.start, window.closes_at(self.grace_seconds))
        async with self.uow_factory() as uow:
            if await uow.buckets.is_window_sealed(window.start):
                raise WindowSealedError(window.start)
        await self.store.close_window(window.start)
        return await self._replay(window)

    async def _replay(self, window: AggregationWindow) -> RebuildResult:
        async with self.uow_factory() as uow:
            if await uow.buckets.is_window_sealed(window.start):
                raise WindowSealedError(window.start)
            records = await uow.stream_events.list_for_window(window.start)

        buckets: dict[tuple[str, str], AggregateBucket] = {}
        replayed = 0
        for record in records:
            if record.late:
                continue
            delta = delta_for(record.event, record.analysis)
            replayed += 1
            if delta is None:
                continue
            key = (record.event.artist_id, record.event.track_id)
            bucket = buckets.get(key) or AggregateBucket(
                artist_id=record.event.artist_id,
                track_id=record.event.track_id,
                window_start=window.start,
                window_end=window.end,
            )
            buckets[key] = bucket.apply(delta)

        await self.store.replace_window(window.start, list(buckets.values()))
        logger.info(
            "Rebuilt window %s: %d events replayed into %d buckets",
            window.start.isoformat(),
            replayed,
            len(buckets),
        )
        return RebuildResult(
            window_start=window.start, events_replayed=replayed, bucket_count=len(buckets)
        )

    async def recover_open_windows(self, now: datetime | None = None) -> list[RebuildResult]:
        """Rebuild every window that can still receive events (startup recovery).

        Runs before ingestion starts, so open windows are replayed without
        fencing. Windows already sealed in the database are sealed in the
        store too, so a fresh in-memory store cannot accept increments for them.
        """
        now = now or self._clock()
        current = AggregationWindow.containing(now, self.window_seconds)
        candidates = [current]
        previous = AggregationWindow(
            start=current.start - timedelta(seconds=self.window_seconds),
            size_seconds=self.window_seconds,
        )
        if not previous.is_closed(now, self.grace_seconds):
            candidates.insert(0, previous)

        results: list[RebuildResult] = []
        for window in candidates:
            async with self.uow_factory() as uow:
                sealed = await uow.buckets.is_window_sealed(window.start)
            if sealed:
                await self.store.seal(window.start, window.end)
                continue
            try:
                results.append(await self._replay(window))
            except WindowSealedError:
                logger.info("Window %s sealed during recovery", window.start.isoformat())
        return results
