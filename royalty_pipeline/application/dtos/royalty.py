"""DTOs for royalty statements, period runs, and payouts."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from royalty_pipeline.domain.enums import PaymentState, RoyaltyStatus


@dataclass(frozen=True)
class StatementAmounts:
    """Statement totals in integer minor units plus the exact pre-rounding values."""

    gross_amount: int
    fraud_deduction: int
    net_amount: int
    valid_play_count: int
    flagged_play_count: int
    bucket_count: int
    exact_gross: Decimal
    exact_deduction: Decimal


@dataclass(frozen=True)
class StatementCreate:
    """Input for appending a statement to the ledger (write-model)."""

    artist_id: str
    period_start: datetime
    period_end: datetime
    currency: str
    amounts: StatementAmounts
    status: RoyaltyStatus = RoyaltyStatus.PENDING
    sequence: int = 0
    corrects_statement_id: str | None = None
    offset_amount: int = 0
    requires_manual_review: bool = False
    review_reason: str | None = None
    calculation_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StatementResult:
    """Royalty statement read-model."""

    id: str
    artist_id: str
    period_start: datetime
    period_end: datetime
    sequence: int
    corrects_statement_id: str | None
    gross_amount: int
    fraud_deduction: int
    net_amount: int
    offset_amount: int
    currency: str
    valid_play_count: int
    flagged_play_count: int
    bucket_count: int
    status: RoyaltyStatus
    requires_manual_review: bool
    review_reason: str | None
    calculation_metadata: dict[str, Any]
    created_at: datetime | None
    finalized_at: datetime | None

    @property
    def is_correction(self) -> bool:
        return self.sequence > 0

    @property
    def payable_amount(self) -> int:
        """Amount handed to the payout processor; a correction pays (or claws back) its offset."""
        return self.offset_amount if self.is_correction else self.net_amount


@dataclass(frozen=True)
class StatementTransitionResult:
    """One entry of a statement's status history."""

    statement_id: str
    from_status: RoyaltyStatus | None
    to_status: RoyaltyStatus
    reason: str | None
    occurred_at: datetime


@dataclass(frozen=True)
class PaymentStatusResult:
    """Payout handoff state for one statement."""

    statement_id: str
    status: PaymentState
    attempts: int
    last_attempt_at: datetime | None
    reference_id: str | None
    last_error: str | None


@dataclass(frozen=True)
class PayoutSubmission:
    """Response of the payout boundary to submit_payout()."""

    accepted: bool
    reference_id: str | None = None
    reason: str | None = None


class ArtistRunStatus(str, Enum):
    """Per-artist outcome of a period run."""

    APPROVED = "approved"
    MANUAL_REVIEW = "manual_review"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ArtistRunOutcome:
    """What the engine did for one artist."""

    artist_id: str
    status: ArtistRunStatus
    statement_id: str | None = None
    net_amount: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class RunReport:
    """Result of run_period for one settlement period."""

    period_start: datetime
    period_end: datetime
    windows_sealed: int
    outcomes: tuple[ArtistRunOutcome, ...]
    cancelled: bool = False

    def _count(self, status: ArtistRunStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def approved(self) -> int:
        return self._count(ArtistRunStatus.APPROVED)

    @property
    def manual_review(self) -> int:
        return self._count(ArtistRunStatus.MANUAL_REVIEW)

    @property
    def skipped(self) -> int:
        return self._count(ArtistRunStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(ArtistRunStatus.FAILED)

    @property
    def created(self) -> int:
        """Statements created by this run (approved or held for review)."""
        return self.approved + self.manual_review

    @property
    def total_net_amount(self) -> int:
        return sum(
            o.net_amount or 0
            for o in self.outcomes
            if o.status in (ArtistRunStatus.APPROVED, ArtistRunStatus.MANUAL_REVIEW)
        )


@dataclass(frozen=True)
class DistributionReport:
    """Result of one payout distribution pass."""

    submitted: tuple[str, ...]
    """Statement ids accepted by the payout processor."""

    failed: tuple[str, ...]
    """Statement ids whose submission failed this pass (retried next pass)."""

    exhausted: tuple[str, ...]
    """Statement ids that used every attempt; need manual resolution."""
