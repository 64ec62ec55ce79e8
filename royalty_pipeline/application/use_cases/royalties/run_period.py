"""Royalty Calculation Engine: settle one period into statements.

run_period is safe to call repeatedly for the same period: artists that
already have an original statement are skipped, and the database unique
constraint on (artist, period, sequence) settles concurrent runs.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from royalty_pipeline.application.dtos.aggregation import AggregateBucket
from royalty_pipeline.application.dtos.royalty import (
    ArtistRunOutcome,
    ArtistRunStatus,
    RunReport,
    StatementAmounts,
    StatementCreate,
)
from royalty_pipeline.application.interfaces.repositories import IUnitOfWork
from royalty_pipeline.application.services.royalty_algorithms import summarize_buckets
from royalty_pipeline.application.use_cases.aggregation import WindowSealingService
from royalty_pipeline.domain.entities import ArtistTierProfile
from royalty_pipeline.domain.enums import RoyaltyStatus
from royalty_pipeline.domain.exceptions import (
    PeriodNotClosedError,
    RequiresManualReview,
    ResourceNotFoundException,
    StatementAlreadyExistsError,
    ValidationError,
)
from royalty_pipeline.domain.value_objects import SettlementPeriod
from royalty_pipeline.shared.telemetry.logging import get_logger
from royalty_pipeline.shared.telemetry.metrics import ROYALTY_STATEMENTS_TOTAL
from royalty_pipeline.shared.telemetry.tracing import (
    TracedOperation,
    add_span_attributes,
    traced,
)
from royalty_pipeline.shared.utils.datetime import utc_now

logger = get_logger(__name__)


def _bucket_inputs(buckets: list[AggregateBucket]) -> list[dict[str, Any]]:
    return [
        {
            "track_id": b.track_id,
            "window_start": b.window_start.isoformat(),
            "valid": b.valid_play_count,
            "flagged": b.flagged_play_count,
            "duration_ms": b.total_duration_ms,
        }
        for b in buckets
    ]


def _calculation_metadata(
    profile: ArtistTierProfile,
    amounts: StatementAmounts,
    buckets: list[AggregateBucket],
    penalty: Decimal,
    ceiling: int,
) -> dict[str, Any]:
    """Everything needed to reproduce the statement from its inputs."""
    return {
        "tier": profile.tier.value,
        "base_rate_per_play": str(profile.base_rate_per_play),
        "tier_multiplier": str(profile.tier_multiplier),
        "penalty_per_flagged_play": str(penalty),
        "exact_gross": str(amounts.exact_gross),
        "exact_deduction": str(amounts.exact_deduction),
        "auto_approve_ceiling": ceiling,
        "buckets": _bucket_inputs(buckets),
    }


class RoyaltyCalculationEngine:
    """Turns a closed period's sealed buckets into royalty statements."""

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        sealing: WindowSealingService,
        *,
        window_seconds: int = 3600,
        grace_seconds: int = 300,
        currency: str = "USD",
        penalty_per_flagged_play: Decimal = Decimal(0),
        auto_approve_ceiling: int = 10_000_000,
        max_parallel_artists: int = 8,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.uow_factory = uow_factory
        self.sealing = sealing
        self.window_seconds = window_seconds
        self.grace_seconds = grace_seconds
        self.currency = currency
        self.penalty_per_flagged_play = penalty_per_flagged_play
        self.auto_approve_ceiling = auto_approve_ceiling
        self.max_parallel_artists = max(1, max_parallel_artists)
        self._clock = clock

    def _validate_period(self, period_start: datetime, period_end: datetime) -> SettlementPeriod:
        try:
            period = SettlementPeriod(start=period_start, end=period_end)
        except ValueError as e:
            raise ValidationError(str(e), field="period")
        if not period.is_aligned(self.window_seconds):
            raise ValidationError(
                f"Period bounds must be aligned to {self.window_seconds}s windows",
                field="period",
            )
        return period

    @traced("royalty.run_period")
    async def run_period(
        self,
        period_start: datetime,
        period_end: datetime,
        cancel_event: asyncio.Event | None = None,
    ) -> RunReport:
        """Settle [period_start, period_end).

        Raises:
            ValidationError: Bad or misaligned period.
            PeriodNotClosedError: now < period_end + grace.
        """
        period = self._validate_period(period_start, period_end)
        now = self._clock()
        closes_at = period.end + timedelta(seconds=self.grace_seconds)
        if now < closes_at:
            raise PeriodNotClosedError(period.end.isoformat(), closes_at.isoformat())

        seal = await self.sealing.seal_due_windows(now, period=period)
        async with self.uow_factory() as uow:
            artists = await uow.buckets.list_artists_for_period(period.start, period.end)
        logger.info(
            "Royalty run %s..%s: %d windows sealed, %d artists",
            period.start.isoformat(),
            period.end.isoformat(),
            len(seal.sealed_windows),
            len(artists),
        )

        slots = asyncio.Semaphore(self.max_parallel_artists)

        async def _guarded(artist_id: str) -> ArtistRunOutcome | None:
            async with slots:
                if cancel_event is not None and cancel_event.is_set():
                    return None
                async with TracedOperation("royalty.settle_artist", {"artist_id": artist_id}):
                    return await self._settle_artist(artist_id, period)

        results = await asyncio.gather(*(_guarded(a) for a in artists))
        outcomes = tuple(r for r in results if r is not None)
        cancelled = len(outcomes) < len(artists)
        if cancelled:
            logger.warning(
                "Royalty run %s..%s cancelled after %d of %d artists",
                period.start.isoformat(),
                period.end.isoformat(),
                len(outcomes),
                len(artists),
            )

        report = RunReport(
            period_start=period.start,
            period_end=period.end,
            windows_sealed=len(seal.sealed_windows),
            outcomes=outcomes,
            cancelled=cancelled,
        )
        add_span_attributes(
            period_start=period.start.isoformat(),
            period_end=period.end.isoformat(),
            created=report.created,
            failed=report.failed,
        )
        return report

    async def _settle_artist(
        self, artist_id: str, period: SettlementPeriod
    ) -> ArtistRunOutcome:
        """Create, calculate and (maybe) approve one artist's statement in one transaction."""
        buckets: list[AggregateBucket] = []
        amounts: StatementAmounts | None = None
        review: RequiresManualReview | None = None
        try:
            async with self.uow_factory() as uow:
                existing = await uow.statements.get_original(artist_id, period.start, period.end)
                if existing is not None:
                    return self._outcome(
                        artist_id, ArtistRunStatus.SKIPPED, existing.id, existing.net_amount
                    )
                profile = await uow.profiles.get(artist_id)
                if profile is None:
                    raise ResourceNotFoundException("artist_tier_profile", artist_id)

                buckets = await uow.buckets.list_for_period(
                    period.start, period.end, artist_id=artist_id
                )
                amounts = summarize_buckets(buckets, profile, self.penalty_per_flagged_play)
                ceiling = profile.effective_ceiling(self.auto_approve_ceiling)
                needs_review = amounts.net_amount > ceiling
                statement = await uow.statements.create(
                    StatementCreate(
                        artist_id=artist_id,
                        period_start=period.start,
                        period_end=period.end,
                        currency=self.currency,
                        amounts=amounts,
                        requires_manual_review=needs_review,
                        review_reason=(
                            f"net amount {amounts.net_amount} exceeds auto-approval ceiling {ceiling}"
                            if needs_review
                            else None
                        ),
                        calculation_metadata=_calculation_metadata(
                            profile, amounts, buckets, self.penalty_per_flagged_play, ceiling
                        ),
                    )
                )
                statement = await uow.statements.transition(
                    statement.id,
                    RoyaltyStatus.CALCULATED,
                    reason=f"calculated from {amounts.bucket_count} sealed buckets",
                )
                if needs_review:
                    review = RequiresManualReview(
                        artist_id, statement.id, amounts.net_amount, ceiling
                    )
                else:
                    statement = await uow.statements.transition(
                        statement.id,
                        RoyaltyStatus.APPROVED,
                        reason="auto-approved: net within ceiling",
                    )
        except StatementAlreadyExistsError:
            logger.info("Statement for artist %s created concurrently; skipping", artist_id)
            return self._outcome(artist_id, ArtistRunStatus.SKIPPED)
        except ResourceNotFoundException as e:
            logger.error("Cannot settle artist %s: %s", artist_id, e.message)
            return self._outcome(artist_id, ArtistRunStatus.FAILED, error=e.message)
        except (AssertionError, AttributeError, NameError, TypeError):
            raise
        except Exception as e:
            logger.exception(
                "Settlement failed for artist %s period %s..%s; buckets=%s amounts=%s",
                artist_id,
                period.start.isoformat(),
                period.end.isoformat(),
                _bucket_inputs(buckets),
                amounts,
            )
            return self._outcome(artist_id, ArtistRunStatus.FAILED, error=str(e))

        if review is not None:
            logger.warning("%s (buckets=%d)", review.message, amounts.bucket_count)
            return self._outcome(
                artist_id,
                ArtistRunStatus.MANUAL_REVIEW,
                statement.id,
                statement.net_amount,
                error=review.message,
            )
        logger.info(
            "Statement %s approved for artist %s: gross=%d deduction=%d net=%d",
            statement.id,
            artist_id,
            amounts.gross_amount,
            amounts.fraud_deduction,
            amounts.net_amount,
        )
        return self._outcome(
            artist_id, ArtistRunStatus.APPROVED, statement.id, statement.net_amount
        )

    @staticmethod
    def _outcome(
        artist_id: str,
        status: ArtistRunStatus,
        statement_id: str | None = None,
        net_amount: int | None = None,
        error: str | None = None,
    ) -> ArtistRunOutcome:
        ROYALTY_STATEMENTS_TOTAL.labels(outcome=status.value).inc()
        return ArtistRunOutcome(
            artist_id=artist_id,
            status=status,
            statement_id=statement_id,
            net_amount=net_amount,
            error=error,
        )
