"""Artist stream statistics from the audit log."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal

from royalty_pipeline.application.dtos.stream_event import ArtistStreamStats
from royalty_pipeline.application.interfaces.repositories import IUnitOfWork
from royalty_pipeline.application.services.royalty_algorithms import round_minor_units
from royalty_pipeline.domain.enums import FraudVerdict
from royalty_pipeline.domain.exceptions import ValidationError
from royalty_pipeline.shared.utils.datetime import utc_now

MAX_LOOKBACK_DAYS = 365


class ArtistStreamStatsService:
    """Totals over the last N days, counted from logged events (not sealed buckets)."""

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.uow_factory = uow_factory
        self._clock = clock

    async def get_stream_stats(self, artist_id: str, days: int = 30) -> ArtistStreamStats:
        if not 1 <= days <= MAX_LOOKBACK_DAYS:
            raise ValidationError(
                f"days must be between 1 and {MAX_LOOKBACK_DAYS}", field="days"
            )
        until = self._clock()
        since = until - timedelta(days=days)
        async with self.uow_factory() as uow:
            counts = await uow.stream_events.count_by_verdict(artist_id, since, until)
            profile = await uow.profiles.get(artist_id)

        valid = counts.get(FraudVerdict.CLEAN.value, 0)
        flagged = counts.get(FraudVerdict.SUSPICIOUS.value, 0)
        rejected = counts.get(FraudVerdict.REJECTED.value, 0)
        estimated = None
        if profile is not None:
            estimated = round_minor_units(
                Decimal(valid) * profile.base_rate_per_play * profile.tier_multiplier
            )
        return ArtistStreamStats(
            artist_id=artist_id,
            period_start=since,
            period_end=until,
            total_streams=valid + flagged + rejected,
            valid_streams=valid,
            flagged_streams=flagged,
            rejected_streams=rejected,
            late_streams=counts.get("late", 0),
            estimated_earnings=estimated,
        )
