"""Repository integration tests. Require Postgres; session is rolled back after each test."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from royalty_pipeline.application.dtos.aggregation import AggregateBucket
from royalty_pipeline.application.dtos.royalty import StatementAmounts, StatementCreate
from royalty_pipeline.application.dtos.stream_event import StreamEventRecord
from royalty_pipeline.domain.entities import ArtistTierProfile, FraudAnalysisResult
from royalty_pipeline.domain.enums import (
    ArtistTier,
    FraudFlag,
    FraudVerdict,
    PaymentState,
    RoyaltyStatus,
)
from royalty_pipeline.domain.exceptions import (
    DuplicateEventError,
    InvalidStatusTransitionError,
    StatementAlreadyExistsError,
)
from royalty_pipeline.infrastructure.persistence.repositories import (
    AggregateBucketRepository,
    PaymentStatusRepository,
    StatementRepository,
    StreamEventRepository,
    TierProfileRepository,
)
from royalty_pipeline.shared.utils.generators import generate_cuid

# Far in the past so rows never collide with data from other runs.
W = datetime(2001, 3, 4, 5, 0, tzinfo=UTC)


def _unique(prefix: str) -> str:
    return f"{prefix}-{generate_cuid()}"


def _record(event_factory, artist_id: str, verdict: FraudVerdict, late: bool = False):
    event = event_factory(
        _unique("ev"), artist_id=artist_id, timestamp=W + timedelta(minutes=10)
    )
    return StreamEventRecord(
        event=event,
        analysis=FraudAnalysisResult(
            event_id=event.event_id,
            score=0.0 if verdict == FraudVerdict.CLEAN else 0.3,
            flags=frozenset() if verdict == FraudVerdict.CLEAN else frozenset({FraudFlag.SHORT_PLAY}),
            verdict=verdict,
        ),
        window_start=W,
        late=late,
        recorded_at=W + timedelta(minutes=11),
    )


def _create(artist_id: str, sequence: int = 0) -> StatementCreate:
    return StatementCreate(
        artist_id=artist_id,
        period_start=W,
        period_end=W + timedelta(hours=1),
        currency="USD",
        amounts=StatementAmounts(
            gross_amount=1500,
            fraud_deduction=25,
            net_amount=1475,
            valid_play_count=10,
            flagged_play_count=1,
            bucket_count=1,
            exact_gross=Decimal("1500"),
            exact_deduction=Decimal("25"),
        ),
        sequence=sequence,
    )


@pytest.mark.requires_db
async def test_stream_event_append_and_read_back(db_session, event_factory) -> None:
    repo = StreamEventRepository(db_session)
    artist_id = _unique("artist")
    record = _record(event_factory, artist_id, FraudVerdict.SUSPICIOUS)

    await repo.append(record)

    assert await repo.exists(record.event.event_id)
    window = [r for r in await repo.list_for_window(W) if r.event.artist_id == artist_id]
    assert len(window) == 1
    assert window[0].analysis.flags == frozenset({FraudFlag.SHORT_PLAY})
    assert window[0].event.source_ip == record.event.source_ip


@pytest.mark.requires_db
async def test_stream_event_duplicate(db_session, event_factory) -> None:
    repo = StreamEventRepository(db_session)
    record = _record(event_factory, _unique("artist"), FraudVerdict.CLEAN)
    await repo.append(record)

    with pytest.raises(DuplicateEventError):
        await repo.append(record)
    # The session stays usable after the rejected insert.
    assert await repo.exists(record.event.event_id)


@pytest.mark.requires_db
async def test_count_by_verdict_and_late(db_session, event_factory) -> None:
    repo = StreamEventRepository(db_session)
    artist_id = _unique("artist")
    for verdict, late in [
        (FraudVerdict.CLEAN, False),
        (FraudVerdict.CLEAN, True),
        (FraudVerdict.REJECTED, False),
    ]:
        await repo.append(_record(event_factory, artist_id, verdict, late))

    counts = await repo.count_by_verdict(artist_id, W, W + timedelta(hours=1))

    assert counts == {"clean": 2, "suspicious": 0, "rejected": 1, "late": 1}


@pytest.mark.requires_db
async def test_save_snapshot_once(db_session) -> None:
    repo = AggregateBucketRepository(db_session)
    artist_id = _unique("artist")
    start = W + timedelta(days=1)
    bucket = AggregateBucket(artist_id, "track-1", start, start + timedelta(hours=1), 5, 1, 900_000)

    first = await repo.save_snapshot(start, start + timedelta(hours=1), [bucket], W)
    second = await repo.save_snapshot(start, start + timedelta(hours=1), [], W)

    assert first is True
    assert second is False
    assert await repo.is_window_sealed(start)
    assert await repo.get(artist_id, "track-1", start) == bucket
    assert artist_id in await repo.list_artists_for_period(start, start + timedelta(hours=1))


@pytest.mark.requires_db
async def test_tier_profile_upsert(db_session) -> None:
    repo = TierProfileRepository(db_session)
    artist_id = _unique("artist")

    await repo.upsert(ArtistTierProfile.for_tier(artist_id, ArtistTier.STANDARD, Decimal("1.25")))
    updated = await repo.upsert(
        ArtistTierProfile.for_tier(artist_id, ArtistTier.VERIFIED, Decimal("2"), 9000)
    )

    assert updated.tier == ArtistTier.VERIFIED
    assert updated.tier_multiplier == Decimal("1.5")
    assert (await repo.get(artist_id)).payout_ceiling == 9000


@pytest.mark.requires_db
async def test_statement_lifecycle(db_session) -> None:
    repo = StatementRepository(db_session)
    artist_id = _unique("artist")
    created = await repo.create(_create(artist_id))

    await repo.transition(created.id, RoyaltyStatus.CALCULATED)
    approved = await repo.transition(created.id, RoyaltyStatus.APPROVED, reason="auto")

    assert approved.status == RoyaltyStatus.APPROVED
    assert approved.net_amount == 1475
    history = await repo.list_transitions(created.id)
    assert [t.to_status for t in history] == [
        RoyaltyStatus.PENDING,
        RoyaltyStatus.CALCULATED,
        RoyaltyStatus.APPROVED,
    ]
    assert (await repo.get_original(artist_id, W, W + timedelta(hours=1))).id == created.id
    with pytest.raises(InvalidStatusTransitionError):
        await repo.transition(created.id, RoyaltyStatus.PENDING)


@pytest.mark.requires_db
async def test_statement_unique_per_sequence(db_session) -> None:
    repo = StatementRepository(db_session)
    artist_id = _unique("artist")
    await repo.create(_create(artist_id))

    with pytest.raises(StatementAlreadyExistsError):
        await repo.create(_create(artist_id))
    assert await repo.latest_sequence(artist_id, W, W + timedelta(hours=1)) == 0


@pytest.mark.requires_db
async def test_payment_status_transitions(db_session) -> None:
    statements = StatementRepository(db_session)
    payments = PaymentStatusRepository(db_session)
    statement = await statements.create(_create(_unique("artist")))

    await payments.create(statement.id)
    processing = await payments.update_status(
        statement.id, PaymentState.PROCESSING, count_attempt=True, attempted_at=W, reference_id="po-1"
    )
    paid = await payments.update_status(statement.id, PaymentState.PAID)

    assert processing.attempts == 1
    assert paid.status == PaymentState.PAID
    assert paid.reference_id == "po-1"
    with pytest.raises(InvalidStatusTransitionError):
        await payments.update_status(statement.id, PaymentState.FAILED)
