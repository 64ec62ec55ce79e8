"""Window sealing, snapshot persistence and rebuild from the audit log."""

from datetime import UTC, datetime, timedelta

import pytest

from royalty_pipeline.application.dtos.aggregation import BucketDelta
from royalty_pipeline.application.services.fraud_analyzer import FraudPolicy
from royalty_pipeline.application.use_cases import (
    AggregateRebuilder,
    EventTracker,
    WindowSealingService,
)
from royalty_pipeline.domain.exceptions import (
    ValidationError,
    WindowOpenError,
    WindowSealedError,
)
from royalty_pipeline.domain.value_objects import SettlementPeriod
from royalty_pipeline.infrastructure.aggregation import InMemoryAggregationStore

NOW = datetime(2025, 1, 13, 12, 0, tzinfo=UTC)
W10 = datetime(2025, 1, 13, 10, 0, tzinfo=UTC)
W11 = datetime(2025, 1, 13, 11, 0, tzinfo=UTC)


class TestSealing:
    async def test_seals_only_closed_windows(self, store, fake_db) -> None:
        await store.increment("a1", "t1", W10, BucketDelta(valid=3))
        await store.increment("a1", "t1", W11, BucketDelta(valid=1))

        result = await WindowSealingService(store, fake_db).seal_due_windows(NOW)

        assert result.sealed_windows == (W10,)
        assert result.bucket_count == 1
        assert await store.is_sealed(W10)
        assert not await store.is_sealed(W11)
        snapshot = fake_db.state.buckets[("a1", "t1", W10)]
        assert snapshot.valid_play_count == 3
        assert fake_db.state.sealed_windows[W10].sealed_at == NOW

    async def test_second_run_is_a_no_op(self, store, fake_db) -> None:
        await store.increment("a1", "t1", W10, BucketDelta(valid=3))
        sealing = WindowSealingService(store, fake_db)
        await sealing.seal_due_windows(NOW)

        again = await sealing.seal_due_windows(NOW)
        assert again.sealed_windows == ()
        assert len(fake_db.state.buckets) == 1

    async def test_interrupted_seal_is_completed_next_run(self, store, fake_db) -> None:
        """Store sealed but snapshot never saved: the period run re-seals and stores it."""
        await store.increment("a1", "t1", W10, BucketDelta(valid=2))
        await store.seal(W10, W11)
        period = SettlementPeriod(start=W10, end=W11)

        result = await WindowSealingService(store, fake_db).seal_due_windows(NOW, period=period)

        assert result.sealed_windows == (W10,)
        assert fake_db.state.buckets[("a1", "t1", W10)].valid_play_count == 2

    async def test_period_seals_empty_windows(self, store, fake_db) -> None:
        period = SettlementPeriod.previous_day(NOW)
        result = await WindowSealingService(store, fake_db).seal_due_windows(NOW, period=period)
        assert len(result.sealed_windows) == 24
        assert result.bucket_count == 0
        assert len(fake_db.state.sealed_windows) == 24


class TestRebuild:
    async def _record_some(self, store, fake_db, event_factory) -> None:
        tracker = EventTracker(
            store,
            fake_db,
            policy=FraudPolicy(weight_short_play=0.9),
            clock=lambda: NOW,
        )
        await tracker.record(event_factory("ok-1", timestamp=W11 + timedelta(minutes=10)))
        await tracker.record(
            event_factory(
                "ok-2",
                listener_id="l2",
                device_id="d2",
                track_id="track-2",
                timestamp=W11 + timedelta(minutes=20),
            )
        )
        await tracker.record(
            event_factory(
                "rejected",
                listener_id="l3",
                device_id="d3",
                duration_ms=1_000,
                timestamp=W11 + timedelta(minutes=30),
            )
        )
        await tracker.record(event_factory("late", listener_id="l4", device_id="d4", timestamp=W10))

    async def test_rebuild_matches_live_counters(self, store, fake_db, event_factory) -> None:
        await self._record_some(store, fake_db, event_factory)
        fresh = InMemoryAggregationStore()

        result = await AggregateRebuilder(fresh, fake_db).rebuild_window(W11)

        assert result.events_replayed == 3
        assert result.bucket_count == 2
        for track_id in ("track-1", "track-2"):
            assert await fresh.get("artist-1", track_id, W11) == await store.get(
                "artist-1", track_id, W11
            )

    async def test_rebuild_replaces_drifted_counters(self, store, fake_db, event_factory) -> None:
        await self._record_some(store, fake_db, event_factory)
        await store.increment("artist-1", "track-1", W11, BucketDelta(valid=40))

        await AggregateRebuilder(store, fake_db).rebuild_window(W11)

        bucket = await store.get("artist-1", "track-1", W11)
        assert bucket is not None and bucket.valid_play_count == 1

    async def test_rebuild_sealed_window_rejected(self, store, fake_db) -> None:
        async with fake_db() as uow:
            await uow.buckets.save_snapshot(W11, W11 + timedelta(hours=1), [], sealed_at=NOW)
        with pytest.raises(WindowSealedError):
            await AggregateRebuilder(store, fake_db).rebuild_window(W11)

    async def test_rebuild_open_window_rejected(self, store, fake_db, event_factory) -> None:
        await self._record_some(store, fake_db, event_factory)
        rebuilder = AggregateRebuilder(store, fake_db, clock=lambda: NOW)

        with pytest.raises(WindowOpenError) as exc_info:
            await rebuilder.rebuild_window(W11)

        assert exc_info.value.details["closes_at"] == (W11 + timedelta(minutes=65)).isoformat()
        bucket = await store.get("artist-1", "track-1", W11)
        assert bucket is not None and bucket.valid_play_count == 1
        await store.increment("artist-1", "track-1", W11, BucketDelta(valid=1))

    async def test_event_recorded_during_rebuild_is_not_erased(
        self, fake_db, event_factory
    ) -> None:
        """A straggler arriving between the log read and the replace is refused, not lost."""
        straggler_results = []

        class StragglerStore(InMemoryAggregationStore):
            async def replace_window(self, window_start, buckets) -> None:
                straggler_results.append(
                    await tracker.record(
                        event_factory(
                            "straggler",
                            listener_id="l9",
                            device_id="d9",
                            timestamp=W11 + timedelta(minutes=40),
                        )
                    )
                )
                await super().replace_window(window_start, buckets)

        store = StragglerStore()
        tracker = EventTracker(store, fake_db, clock=lambda: NOW)
        await tracker.record(event_factory("ok-1", timestamp=W11 + timedelta(minutes=10)))
        rebuilder = AggregateRebuilder(
            store, fake_db, clock=lambda: W11 + timedelta(minutes=66)
        )

        result = await rebuilder.rebuild_window(W11)

        assert result.events_replayed == 1
        [straggler] = straggler_results
        assert straggler.late is True
        assert straggler.aggregated is False
        bucket = await store.get("artist-1", "track-1", W11)
        assert bucket is not None and bucket.valid_play_count == 1

    async def test_rebuild_misaligned_window_rejected(self, store, fake_db) -> None:
        with pytest.raises(ValidationError):
            await AggregateRebuilder(store, fake_db).rebuild_window(W11 + timedelta(minutes=7))

    async def test_recover_open_windows(self, store, fake_db, event_factory) -> None:
        await self._record_some(store, fake_db, event_factory)
        fresh = InMemoryAggregationStore()

        results = await AggregateRebuilder(fresh, fake_db).recover_open_windows(NOW)

        assert [r.window_start for r in results] == [W11, NOW]
        bucket = await fresh.get("artist-1", "track-1", W11)
        assert bucket is not None and bucket.valid_play_count == 1

    async def test_recover_seals_windows_sealed_in_database(self, store, fake_db) -> None:
        async with fake_db() as uow:
            await uow.buckets.save_snapshot(W11, NOW, [], sealed_at=NOW)

        results = await AggregateRebuilder(store, fake_db).recover_open_windows(NOW)

        assert [r.window_start for r in results] == [NOW]
        assert await store.is_sealed(W11)
        with pytest.raises(WindowSealedError):
            await store.increment("a1", "t1", W11, BucketDelta(valid=1))
