"""EventTracker.record: scoring, audit log, aggregate increments, late and degraded paths."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from royalty_pipeline.application.dtos.aggregation import BucketDelta
from royalty_pipeline.application.services.fraud_analyzer import FraudPolicy
from royalty_pipeline.application.use_cases import EventTracker
from royalty_pipeline.domain.enums import FraudFlag, FraudVerdict
from royalty_pipeline.domain.exceptions import (
    DuplicateEventError,
    IngestionOverloadedError,
    TransientStoreError,
    ValidationError,
)
from royalty_pipeline.domain.value_objects import AggregationWindow
from royalty_pipeline.infrastructure.aggregation import InMemoryAggregationStore

# Matches the default event_factory clock (events default to five minutes earlier).
NOW = datetime(2025, 1, 13, 12, 0, tzinfo=UTC)
CURRENT_WINDOW = AggregationWindow.containing(NOW - timedelta(minutes=5), 3600)


class RecordingPublisher:
    def __init__(self) -> None:
        self.published: list[tuple[str, FraudVerdict, bool]] = []

    async def publish_recorded(self, event, analysis, late) -> bool:
        self.published.append((event.event_id, analysis.verdict, late))
        return True


class FlakyStore(InMemoryAggregationStore):
    """Fails the first `increment_failures` increments and, optionally, every history lookup."""

    def __init__(self, increment_failures: int = 0, history_down: bool = False) -> None:
        super().__init__(window_seconds=3600)
        self.increment_failures = increment_failures
        self.history_down = history_down
        self.increment_calls = 0

    async def increment(self, artist_id, track_id, window_start, delta: BucketDelta) -> None:
        self.increment_calls += 1
        if self.increment_calls <= self.increment_failures:
            raise TransientStoreError("redis down", store="redis")
        await super().increment(artist_id, track_id, window_start, delta)

    async def recent_history(self, listener_id, device_id, until, lookback_seconds):
        if self.history_down:
            raise TransientStoreError("redis down", store="redis")
        return await super().recent_history(listener_id, device_id, until, lookback_seconds)


def _tracker(store, fake_db, **kwargs) -> EventTracker:
    kwargs.setdefault("increment_backoff_seconds", 0)
    return EventTracker(store, fake_db, clock=lambda: NOW, **kwargs)


async def test_clean_event_is_logged_and_counted(store, fake_db, event_factory) -> None:
    result = await _tracker(store, fake_db).record(event_factory())

    assert result.accepted and result.aggregated and not result.late
    assert result.verdict == FraudVerdict.CLEAN
    bucket = await store.get("artist-1", "track-1", CURRENT_WINDOW.start)
    assert bucket is not None
    assert bucket.valid_play_count == 1
    assert bucket.total_duration_ms == 180_000
    record = fake_db.state.records["ev-1"]
    assert record.window_start == CURRENT_WINDOW.start
    assert record.recorded_at == NOW


async def test_duplicate_event_leaves_counters_unchanged(store, fake_db, event_factory) -> None:
    tracker = _tracker(store, fake_db)
    await tracker.record(event_factory())

    with pytest.raises(DuplicateEventError):
        await tracker.record(event_factory())

    bucket = await store.get("artist-1", "track-1", CURRENT_WINDOW.start)
    assert bucket is not None and bucket.valid_play_count == 1
    assert len(fake_db.state.records) == 1


async def test_suspicious_event_counts_as_flagged(store, fake_db, event_factory) -> None:
    result = await _tracker(store, fake_db).record(event_factory(duration_ms=5_000))

    assert result.accepted
    assert result.verdict == FraudVerdict.SUSPICIOUS
    assert result.flags == (FraudFlag.SHORT_PLAY.value,)
    bucket = await store.get("artist-1", "track-1", CURRENT_WINDOW.start)
    assert bucket is not None
    assert (bucket.valid_play_count, bucket.flagged_play_count) == (0, 1)


async def test_rejected_event_is_logged_but_never_counted(store, fake_db, event_factory) -> None:
    strict = FraudPolicy(weight_short_play=0.9)
    result = await _tracker(store, fake_db, policy=strict).record(
        event_factory(duration_ms=5_000)
    )

    assert not result.accepted
    assert not result.aggregated
    assert result.verdict == FraudVerdict.REJECTED
    assert await store.get("artist-1", "track-1", CURRENT_WINDOW.start) is None
    assert fake_db.state.records["ev-1"].analysis.verdict == FraudVerdict.REJECTED


async def test_ten_rapid_replays(store, fake_db, event_factory) -> None:
    """Ten plays of one track in 30 seconds from one device: only the first four are valid."""
    tracker = _tracker(store, fake_db)
    start = NOW - timedelta(minutes=5)
    results = [
        await tracker.record(event_factory(f"ev-{i}", timestamp=start + timedelta(seconds=3 * i)))
        for i in range(10)
    ]

    assert all(FraudFlag.HIGH_VELOCITY.value in r.flags for r in results[5:])
    assert all(r.verdict != FraudVerdict.CLEAN for r in results[4:])
    bucket = await store.get("artist-1", "track-1", CURRENT_WINDOW.start)
    assert bucket is not None
    assert bucket.valid_play_count == 4
    assert bucket.flagged_play_count == 1


async def test_event_after_window_close_is_late(store, fake_db, event_factory) -> None:
    old = event_factory(timestamp=NOW - timedelta(hours=2))
    result = await _tracker(store, fake_db).record(old)

    assert result.late and not result.aggregated
    assert result.accepted
    assert fake_db.state.records["ev-1"].late
    assert await store.open_window_starts() == []


async def test_event_for_sealed_window_is_late(store, fake_db, event_factory) -> None:
    await store.seal(CURRENT_WINDOW.start, CURRENT_WINDOW.end)
    result = await _tracker(store, fake_db).record(event_factory())

    assert result.late and not result.aggregated
    assert await store.get("artist-1", "track-1", CURRENT_WINDOW.start) is None


async def test_future_event_rejected_before_logging(store, fake_db, event_factory) -> None:
    with pytest.raises(ValidationError, match="future"):
        await _tracker(store, fake_db).record(
            event_factory(timestamp=NOW + timedelta(minutes=10))
        )
    assert fake_db.state.records == {}


async def test_history_outage_scores_without_history(fake_db, event_factory) -> None:
    store = FlakyStore(history_down=True)
    result = await _tracker(store, fake_db).record(event_factory())
    assert result.verdict == FraudVerdict.CLEAN
    assert result.aggregated


async def test_increment_retried_after_transient_failure(fake_db, event_factory) -> None:
    store = FlakyStore(increment_failures=2)
    result = await _tracker(store, fake_db, increment_max_attempts=3).record(event_factory())
    assert result.aggregated
    assert store.increment_calls == 3


async def test_increment_exhausted_keeps_audit_record(fake_db, event_factory) -> None:
    store = FlakyStore(increment_failures=5)
    result = await _tracker(store, fake_db, increment_max_attempts=2).record(event_factory())
    assert result.accepted and not result.aggregated
    assert "ev-1" in fake_db.state.records
    assert await store.get("artist-1", "track-1", CURRENT_WINDOW.start) is None


async def test_overloaded_ingestion_sheds_load(store, fake_db, event_factory) -> None:
    tracker = _tracker(store, fake_db, max_in_flight=1, acquire_timeout_seconds=0.01)
    await tracker._slots.acquire()
    try:
        with pytest.raises(IngestionOverloadedError):
            await tracker.record(event_factory())
    finally:
        tracker._slots.release()
    assert fake_db.state.records == {}


async def test_publisher_notified_with_late_flag(store, fake_db, event_factory) -> None:
    publisher = RecordingPublisher()
    tracker = _tracker(store, fake_db, publisher=publisher)
    await tracker.record(event_factory("ev-now"))
    await tracker.record(event_factory("ev-old", timestamp=NOW - timedelta(hours=3)))
    assert publisher.published == [
        ("ev-now", FraudVerdict.CLEAN, False),
        ("ev-old", FraudVerdict.CLEAN, True),
    ]


async def test_concurrent_records_count_every_play(store, fake_db, event_factory) -> None:
    tracker = _tracker(store, fake_db)
    events = [
        event_factory(
            f"ev-{i}",
            listener_id=f"listener-{i}",
            device_id=f"device-{i}",
            timestamp=NOW - timedelta(minutes=10),
        )
        for i in range(25)
    ]
    await asyncio.gather(*(tracker.record(e) for e in events))
    bucket = await store.get("artist-1", "track-1", CURRENT_WINDOW.start)
    assert bucket is not None and bucket.valid_play_count == 25
