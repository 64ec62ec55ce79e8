"""Seal closed aggregation windows and persist their snapshots."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from royalty_pipeline.application.dtos.aggregation import SealRunResult
from royalty_pipeline.application.interfaces.repositories import IUnitOfWork
from royalty_pipeline.application.interfaces.services import IAggregationStore
from royalty_pipeline.domain.value_objects import AggregationWindow, SettlementPeriod
from royalty_pipeline.shared.telemetry.logging import get_logger
from royalty_pipeline.shared.telemetry.tracing import traced
from royalty_pipeline.shared.utils.datetime import utc_now

logger = get_logger(__name__)


class WindowSealingService:
    """Seals windows whose end + grace has passed.

    Sealing the store and saving the snapshot are both idempotent, so a run
    interrupted between the two is completed by the next run.
    """

    def __init__(
        self,
        store: IAggregationStore,
        uow_factory: Callable[[], IUnitOfWork],
        *,
        window_seconds: int = 3600,
        grace_seconds: int = 300,
    ) -> None:
        self.store = store
        self.uow_factory = uow_factory
        self.window_seconds = window_seconds
        self.grace_seconds = grace_seconds

    @traced("aggregation.seal_due_windows")
    async def seal_due_windows(
        self,
        now: datetime | None = None,
        period: SettlementPeriod | None = None,
    ) -> SealRunResult:
        """Seal every open window that is closed at now.

        When period is given, every window of the period is sealed as well
        (empty ones included) so the period has a complete sealed record.
        """
        now = now or utc_now()
        starts = set(await self.store.open_window_starts(before=now))
        if period is not None:
            starts.update(w.start for w in period.windows(self.window_seconds))

        sealed: list[datetime] = []
        bucket_count = 0
        for start in sorted(starts):
            window = AggregationWindow(start=start, size_seconds=self.window_seconds)
            if not window.is_closed(now, self.grace_seconds):
                continue
            buckets = await self.store.seal(window.start, window.end)
            async with self.uow_factory() as uow:
                stored = await uow.buckets.save_snapshot(
                    window.start, window.end, buckets, sealed_at=now
                )
            if stored:
                sealed.append(window.start)
                bucket_count += len(buckets)
                logger.info(
                    "Sealed window %s with %d buckets", window.start.isoformat(), len(buckets)
                )

        return SealRunResult(sealed_windows=tuple(sealed), bucket_count=bucket_count)
