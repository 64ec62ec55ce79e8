"""Repository interfaces (ports) for the application layer.

Protocols define contracts that infrastructure implementations must fulfill (DIP).
All types reference application DTOs or domain entities only; no infrastructure imports.
"""

from __future__ import annotations

from datetime import datetime
from types import TracebackType
from typing import TYPE_CHECKING, Protocol

from royalty_pipeline.domain.enums import PaymentState, RoyaltyStatus

if TYPE_CHECKING:
    from royalty_pipeline.application.dtos.aggregation import AggregateBucket
    from royalty_pipeline.application.dtos.royalty import (
        PaymentStatusResult,
        StatementCreate,
        StatementResult,
        StatementTransitionResult,
    )
    from royalty_pipeline.application.dtos.stream_event import StreamEventRecord
    from royalty_pipeline.domain.entities import ArtistTierProfile


# Audit log of stream events (append-only)
class IStreamEventRepository(Protocol):
    """Protocol for the durable stream event log (DIP)."""

    async def exists(self, event_id: str) -> bool:
        """Return whether event_id is already recorded."""

    async def append(self, record: StreamEventRecord) -> None:
        """Append one event with its analysis. Raises DuplicateEventError on a repeated event_id."""

    async def list_for_window(self, window_start: datetime) -> list[StreamEventRecord]:
        """Return non-late events whose window starts at window_start (rebuild input)."""

    async def count_by_verdict(
        self, artist_id: str, since: datetime, until: datetime
    ) -> dict[str, int]:
        """Return counts keyed by verdict value plus 'late' for the artist in [since, until)."""


# Sealed aggregate snapshots
class IAggregateBucketRepository(Protocol):
    """Protocol for sealed aggregate bucket snapshots (DIP)."""

    async def save_snapshot(
        self,
        window_start: datetime,
        window_end: datetime,
        buckets: list[AggregateBucket],
        sealed_at: datetime,
    ) -> bool:
        """Persist a sealed window and its buckets. Returns False if it was already stored."""

    async def is_window_sealed(self, window_start: datetime) -> bool:
        """Return whether a sealed_window row exists for window_start."""

    async def get(
        self, artist_id: str, track_id: str, window_start: datetime
    ) -> AggregateBucket | None:
        """Return one sealed bucket or None."""

    async def list_for_period(
        self,
        period_start: datetime,
        period_end: datetime,
        artist_id: str | None = None,
        track_id: str | None = None,
    ) -> list[AggregateBucket]:
        """Return sealed buckets in the period, optionally for one artist/track."""

    async def list_artists_for_period(
        self, period_start: datetime, period_end: datetime
    ) -> list[str]:
        """Return artist ids that have at least one sealed bucket in the period."""


# Artist tier reference data
class ITierProfileRepository(Protocol):
    """Protocol for artist tier profiles (DIP)."""

    async def get(self, artist_id: str) -> ArtistTierProfile | None:
        """Return the artist's rate card or None."""

    async def upsert(self, profile: ArtistTierProfile) -> ArtistTierProfile:
        """Create or replace the artist's rate card."""


# Royalty statement ledger (append-only amounts)
class IStatementRepository(Protocol):
    """Protocol for the royalty statement ledger (DIP)."""

    async def get_by_id(self, statement_id: str) -> StatementResult | None:
        """Return a statement by id."""

    async def get_original(
        self, artist_id: str, period_start: datetime, period_end: datetime
    ) -> StatementResult | None:
        """Return the sequence-0 statement for (artist, period), or None."""

    async def latest_sequence(
        self, artist_id: str, period_start: datetime, period_end: datetime
    ) -> int:
        """Return the highest sequence for (artist, period); -1 when none exists."""

    async def create(self, data: StatementCreate) -> StatementResult:
        """Append a statement. Raises StatementAlreadyExistsError on (artist, period, sequence) conflict."""

    async def transition(
        self,
        statement_id: str,
        target: RoyaltyStatus,
        reason: str | None = None,
        *,
        requires_manual_review: bool | None = None,
        finalized_at: datetime | None = None,
    ) -> StatementResult:
        """Move a statement to target (transition table enforced) and record the history row."""

    async def list_statements(
        self,
        *,
        artist_id: str | None = None,
        status: RoyaltyStatus | None = None,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
        requires_manual_review: bool | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[StatementResult]:
        """Return statements (newest first) matching the filters."""

    async def list_transitions(self, statement_id: str) -> list[StatementTransitionResult]:
        """Return the status history of a statement, oldest first."""


# Payout handoff
class IPaymentStatusRepository(Protocol):
    """Protocol for payment status rows (DIP)."""

    async def get(self, statement_id: str) -> PaymentStatusResult | None:
        """Return the payment status for a statement."""

    async def create(self, statement_id: str) -> PaymentStatusResult:
        """Create a PENDING payment status with zero attempts."""

    async def update_status(
        self,
        statement_id: str,
        target: PaymentState,
        *,
        count_attempt: bool = False,
        attempted_at: datetime | None = None,
        reference_id: str | None = None,
        last_error: str | None = None,
    ) -> PaymentStatusResult:
        """Move the payment to target (transition table enforced)."""

    async def list_by_status(
        self,
        status: PaymentState,
        limit: int = 100,
        *,
        attempts_below: int | None = None,
        attempts_at_least: int | None = None,
    ) -> list[PaymentStatusResult]:
        """Return payment rows in the given state, oldest attempt first.

        The attempt bounds filter before the limit is applied.
        """


class IUnitOfWork(Protocol):
    """One database transaction exposing every repository.

    Commits when the async context exits normally and rolls back on error.
    """

    stream_events: IStreamEventRepository
    buckets: IAggregateBucketRepository
    profiles: ITierProfileRepository
    statements: IStatementRepository
    payments: IPaymentStatusRepository

    async def __aenter__(self) -> IUnitOfWork:
        """Open the session and begin the transaction."""

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Commit or roll back, then close the session."""
