"""Pytest configuration and fixtures for the royalty pipeline.

Use-case and HTTP tests run against in-memory fakes of the unit of work
(FakeDatabase) and the in-process aggregation store, so they need neither
Postgres nor Redis. Repository tests use the db_session fixture, which
skips when DATABASE_URL is not set.
"""

import copy
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from royalty_pipeline.api.v1.dependencies import (
    build_event_tracker,
    get_aggregation_store,
    get_event_tracker,
    get_payout_gateway,
    get_uow_factory,
)
from royalty_pipeline.application.dtos.aggregation import AggregateBucket, SealedWindowResult
from royalty_pipeline.application.dtos.royalty import (
    PaymentStatusResult,
    PayoutSubmission,
    StatementCreate,
    StatementResult,
    StatementTransitionResult,
)
from royalty_pipeline.application.dtos.stream_event import StreamEventRecord
from royalty_pipeline.core.config import get_settings
from royalty_pipeline.core.limiter import limiter
from royalty_pipeline.domain.entities import ArtistTierProfile, StreamEvent
from royalty_pipeline.domain.enums import (
    ArtistTier,
    FraudVerdict,
    PaymentState,
    RoyaltyStatus,
    SubscriptionTier,
    can_transition_payment,
    can_transition_statement,
)
from royalty_pipeline.domain.exceptions import (
    DuplicateEventError,
    InvalidStatusTransitionError,
    ResourceNotFoundException,
    StatementAlreadyExistsError,
    ValidationError,
)
from royalty_pipeline.infrastructure.aggregation import InMemoryAggregationStore
from royalty_pipeline.infrastructure.persistence import database
from royalty_pipeline.main import app
from royalty_pipeline.shared.utils.generators import generate_cuid

# Fixed "now" used by use-case tests: Monday 2025-01-13 12:00 UTC.
NOW = datetime(2025, 1, 13, 12, 0, tzinfo=UTC)


# ---- In-memory persistence fakes ----


@dataclass
class _State:
    records: dict[str, StreamEventRecord] = field(default_factory=dict)
    sealed_windows: dict[datetime, SealedWindowResult] = field(default_factory=dict)
    buckets: dict[tuple[str, str, datetime], AggregateBucket] = field(default_factory=dict)
    profiles: dict[str, ArtistTierProfile] = field(default_factory=dict)
    statements: dict[str, StatementResult] = field(default_factory=dict)
    transitions: list[StatementTransitionResult] = field(default_factory=list)
    payments: dict[str, PaymentStatusResult] = field(default_factory=dict)


class FakeStreamEventRepository:
    def __init__(self, db: "FakeDatabase") -> None:
        self._db = db

    async def exists(self, event_id: str) -> bool:
        return event_id in self._db.state.records

    async def append(self, record: StreamEventRecord) -> None:
        if record.event.event_id in self._db.state.records:
            raise DuplicateEventError(record.event.event_id)
        self._db.state.records[record.event.event_id] = record

    async def list_for_window(self, window_start: datetime) -> list[StreamEventRecord]:
        records = [
            r
            for r in self._db.state.records.values()
            if r.window_start == window_start and not r.late
        ]
        return sorted(records, key=lambda r: (r.event.timestamp, r.event.event_id))

    async def count_by_verdict(
        self, artist_id: str, since: datetime, until: datetime
    ) -> dict[str, int]:
        counts = {v: 0 for v in FraudVerdict.values()}
        counts["late"] = 0
        for r in self._db.state.records.values():
            if r.event.artist_id != artist_id or not since <= r.event.timestamp < until:
                continue
            counts[r.analysis.verdict.value] += 1
            if r.late:
                counts["late"] += 1
        return counts


class FakeAggregateBucketRepository:
    def __init__(self, db: "FakeDatabase") -> None:
        self._db = db

    async def save_snapshot(
        self,
        window_start: datetime,
        window_end: datetime,
        buckets: list[AggregateBucket],
        sealed_at: datetime,
    ) -> bool:
        state = self._db.state
        if window_start in state.sealed_windows:
            return False
        state.sealed_windows[window_start] = SealedWindowResult(
            window_start=window_start,
            window_end=window_end,
            bucket_count=len(buckets),
            sealed_at=sealed_at,
        )
        for bucket in buckets:
            state.buckets.setdefault(bucket.key, bucket)
        return True

    async def is_window_sealed(self, window_start: datetime) -> bool:
        return window_start in self._db.state.sealed_windows

    async def get(
        self, artist_id: str, track_id: str, window_start: datetime
    ) -> AggregateBucket | None:
        return self._db.state.buckets.get((artist_id, track_id, window_start))

    async def list_for_period(
        self,
        period_start: datetime,
        period_end: datetime,
        artist_id: str | None = None,
        track_id: str | None = None,
    ) -> list[AggregateBucket]:
        found = [
            b
            for b in self._db.state.buckets.values()
            if period_start <= b.window_start < period_end
            and (artist_id is None or b.artist_id == artist_id)
            and (track_id is None or b.track_id == track_id)
        ]
        return sorted(found, key=lambda b: (b.window_start, b.artist_id, b.track_id))

    async def list_artists_for_period(
        self, period_start: datetime, period_end: datetime
    ) -> list[str]:
        return sorted(
            {b.artist_id for b in await self.list_for_period(period_start, period_end)}
        )


class FakeTierProfileRepository:
    def __init__(self, db: "FakeDatabase") -> None:
        self._db = db

    async def get(self, artist_id: str) -> ArtistTierProfile | None:
        return self._db.state.profiles.get(artist_id)

    async def upsert(self, profile: ArtistTierProfile) -> ArtistTierProfile:
        self._db.state.profiles[profile.artist_id] = profile
        return profile


class FakeStatementRepository:
    def __init__(self, db: "FakeDatabase") -> None:
        self._db = db

    def _record_transition(
        self,
        statement_id: str,
        from_status: RoyaltyStatus | None,
        to_status: RoyaltyStatus,
        reason: str | None,
    ) -> None:
        self._db.state.transitions.append(
            StatementTransitionResult(
                statement_id=statement_id,
                from_status=from_status,
                to_status=to_status,
                reason=reason,
                occurred_at=self._db.tick(),
            )
        )

    async def get_by_id(self, statement_id: str) -> StatementResult | None:
        return self._db.state.statements.get(statement_id)

    async def get_original(
        self, artist_id: str, period_start: datetime, period_end: datetime
    ) -> StatementResult | None:
        for s in self._db.state.statements.values():
            if (s.artist_id, s.period_start, s.period_end, s.sequence) == (
                artist_id,
                period_start,
                period_end,
                0,
            ):
                return s
        return None

    async def latest_sequence(
        self, artist_id: str, period_start: datetime, period_end: datetime
    ) -> int:
        sequences = [
            s.sequence
            for s in self._db.state.statements.values()
            if (s.artist_id, s.period_start, s.period_end) == (artist_id, period_start, period_end)
        ]
        return max(sequences, default=-1)

    async def create(self, data: StatementCreate) -> StatementResult:
        for s in self._db.state.statements.values():
            if (s.artist_id, s.period_start, s.period_end, s.sequence) == (
                data.artist_id,
                data.period_start,
                data.period_end,
                data.sequence,
            ):
                raise StatementAlreadyExistsError(
                    data.artist_id,
                    data.period_start.isoformat(),
                    data.period_end.isoformat(),
                    data.sequence,
                )
        amounts = data.amounts
        statement = StatementResult(
            id=generate_cuid(),
            artist_id=data.artist_id,
            period_start=data.period_start,
            period_end=data.period_end,
            sequence=data.sequence,
            corrects_statement_id=data.corrects_statement_id,
            gross_amount=amounts.gross_amount,
            fraud_deduction=amounts.fraud_deduction,
            net_amount=amounts.net_amount,
            offset_amount=data.offset_amount,
            currency=data.currency,
            valid_play_count=amounts.valid_play_count,
            flagged_play_count=amounts.flagged_play_count,
            bucket_count=amounts.bucket_count,
            status=data.status,
            requires_manual_review=data.requires_manual_review,
            review_reason=data.review_reason,
            calculation_metadata=dict(data.calculation_metadata),
            created_at=self._db.tick(),
            finalized_at=None,
        )
        self._db.state.statements[statement.id] = statement
        self._record_transition(statement.id, None, statement.status, "created")
        return statement

    async def transition(
        self,
        statement_id: str,
        target: RoyaltyStatus,
        reason: str | None = None,
        *,
        requires_manual_review: bool | None = None,
        finalized_at: datetime | None = None,
    ) -> StatementResult:
        current = self._db.state.statements.get(statement_id)
        if current is None:
            raise ResourceNotFoundException("royalty_statement", statement_id)
        if not can_transition_statement(current.status, target):
            raise InvalidStatusTransitionError(
                "royalty_statement", statement_id, current.status.value, target.value
            )
        updated = replace(
            current,
            status=target,
            requires_manual_review=(
                current.requires_manual_review
                if requires_manual_review is None
                else requires_manual_review
            ),
            finalized_at=finalized_at or current.finalized_at,
        )
        self._db.state.statements[statement_id] = updated
        self._record_transition(statement_id, current.status, target, reason)
        return updated

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
        found = [
            s
            for s in self._db.state.statements.values()
            if (artist_id is None or s.artist_id == artist_id)
            and (status is None or s.status == status)
            and (period_start is None or s.period_start >= period_start)
            and (period_end is None or s.period_end <= period_end)
            and (
                requires_manual_review is None
                or s.requires_manual_review == requires_manual_review
            )
        ]
        found.sort(key=lambda s: (s.created_at, s.id), reverse=True)
        return found[skip : skip + limit]

    async def list_transitions(self, statement_id: str) -> list[StatementTransitionResult]:
        return [t for t in self._db.state.transitions if t.statement_id == statement_id]


class FakePaymentStatusRepository:
    def __init__(self, db: "FakeDatabase") -> None:
        self._db = db

    async def get(self, statement_id: str) -> PaymentStatusResult | None:
        return self._db.state.payments.get(statement_id)

    async def create(self, statement_id: str) -> PaymentStatusResult:
        if statement_id in self._db.state.payments:
            raise ValidationError(
                f"Payment status for statement {statement_id} already exists",
                field="statement_id",
            )
        payment = PaymentStatusResult(
            statement_id=statement_id,
            status=PaymentState.PENDING,
            attempts=0,
            last_attempt_at=None,
            reference_id=None,
            last_error=None,
        )
        self._db.state.payments[statement_id] = payment
        return payment

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
        current = self._db.state.payments.get(statement_id)
        if current is None:
            raise ResourceNotFoundException("payment_status", statement_id)
        if not can_transition_payment(current.status, target):
            raise InvalidStatusTransitionError(
                "payment_status", statement_id, current.status.value, target.value
            )
        updated = replace(
            current,
            status=target,
            attempts=current.attempts + (1 if count_attempt else 0),
            last_attempt_at=attempted_at or current.last_attempt_at,
            reference_id=reference_id or current.reference_id,
            last_error=last_error,
        )
        self._db.state.payments[statement_id] = updated
        return updated

    async def list_by_status(
        self,
        status: PaymentState,
        limit: int = 100,
        *,
        attempts_below: int | None = None,
        attempts_at_least: int | None = None,
    ) -> list[PaymentStatusResult]:
        found = [
            p
            for p in self._db.state.payments.values()
            if p.status == status
            and (attempts_below is None or p.attempts < attempts_below)
            and (attempts_at_least is None or p.attempts >= attempts_at_least)
        ]
        found.sort(key=lambda p: (p.last_attempt_at is not None, p.last_attempt_at, p.statement_id))
        return found[:limit]


class FakeUnitOfWork:
    """IUnitOfWork over FakeDatabase; restores the previous state on error."""

    def __init__(self, db: "FakeDatabase") -> None:
        self._db = db
        self.stream_events = FakeStreamEventRepository(db)
        self.buckets = FakeAggregateBucketRepository(db)
        self.profiles = FakeTierProfileRepository(db)
        self.statements = FakeStatementRepository(db)
        self.payments = FakePaymentStatusRepository(db)
        self._snapshot: _State | None = None

    async def __aenter__(self) -> "FakeUnitOfWork":
        self._snapshot = copy.deepcopy(self._db.state)
        self._db.transactions += 1
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None and self._snapshot is not None:
            self._db.state = self._snapshot
        self._snapshot = None


class FakeDatabase:
    """Shared in-memory state; calling it returns a fresh unit of work (uow_factory)."""

    def __init__(self) -> None:
        self.state = _State()
        self.transactions = 0
        self._clock = NOW

    def __call__(self) -> FakeUnitOfWork:
        return FakeUnitOfWork(self)

    def tick(self) -> datetime:
        """Strictly increasing timestamps for created_at / occurred_at ordering."""
        self._clock += timedelta(milliseconds=1)
        return self._clock


class FakePayoutGateway:
    """IPayoutGateway that accepts unless told to reject; records submissions."""

    def __init__(self) -> None:
        self.submitted: list[StatementResult] = []
        self.reject_reason: str | None = None

    async def submit_payout(self, statement: StatementResult) -> PayoutSubmission:
        self.submitted.append(statement)
        if self.reject_reason is not None:
            return PayoutSubmission(accepted=False, reason=self.reject_reason)
        return PayoutSubmission(accepted=True, reference_id=f"ref-{statement.id}")


# ---- Builders ----


def make_event(
    event_id: str = "ev-1",
    *,
    timestamp: datetime = NOW - timedelta(minutes=5),
    artist_id: str = "artist-1",
    track_id: str = "track-1",
    listener_id: str = "listener-1",
    device_id: str = "device-1",
    duration_ms: int = 180_000,
    track_duration_ms: int | None = 200_000,
    source_ip: str = "203.0.113.10",
    subscription_tier: SubscriptionTier = SubscriptionTier.PREMIUM,
) -> StreamEvent:
    return StreamEvent(
        event_id=event_id,
        track_id=track_id,
        artist_id=artist_id,
        listener_id=listener_id,
        device_id=device_id,
        timestamp=timestamp,
        duration_ms=duration_ms,
        subscription_tier=subscription_tier,
        source_ip=source_ip,
        track_duration_ms=track_duration_ms,
    )


def make_profile(
    artist_id: str = "artist-1",
    tier: ArtistTier = ArtistTier.STANDARD,
    base_rate: str = "2",
    payout_ceiling: int | None = None,
) -> ArtistTierProfile:
    return ArtistTierProfile.for_tier(artist_id, tier, Decimal(base_rate), payout_ceiling)


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def store() -> InMemoryAggregationStore:
    return InMemoryAggregationStore(window_seconds=3600)


@pytest.fixture
def payout_gateway() -> FakePayoutGateway:
    return FakePayoutGateway()


@pytest.fixture
def event_factory() -> Callable[..., StreamEvent]:
    return make_event


@pytest.fixture
def profile_factory() -> Callable[..., ArtistTierProfile]:
    return make_profile


# ---- HTTP ----


@pytest.fixture
async def client(
    fake_db: FakeDatabase,
    store: InMemoryAggregationStore,
    payout_gateway: FakePayoutGateway,
) -> AsyncClient:
    """Async HTTP client against the FastAPI app (ASGI) with in-memory backends."""
    tracker = build_event_tracker(get_settings(), store, fake_db)
    app.dependency_overrides[get_uow_factory] = lambda: fake_db
    app.dependency_overrides[get_aggregation_store] = lambda: store
    app.dependency_overrides[get_event_tracker] = lambda: tracker
    app.dependency_overrides[get_payout_gateway] = lambda: payout_gateway
    limiter.reset()
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
async def db_session() -> AsyncSession:
    """Database session for repository/integration tests. Rolls back after test.

    Requires DATABASE_URL and a migrated schema (alembic upgrade head).
    Skips when Postgres is not configured; run without DB via:
    pytest -m 'not requires_db'.
    """
    database._ensure_engine()
    if database.AsyncSessionLocal is None:
        pytest.skip(
            "Postgres not configured: set DATABASE_URL, then run: alembic upgrade head"
        )
    async with database.AsyncSessionLocal() as session:
        yield session
        await session.rollback()
