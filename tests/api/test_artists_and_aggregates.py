"""Tier profile, window sealing and sealed aggregate endpoints."""

from datetime import timedelta

from httpx import AsyncClient

from royalty_pipeline.application.dtos.aggregation import BucketDelta
from royalty_pipeline.domain.value_objects import align_window_start
from royalty_pipeline.shared.utils.datetime import utc_now


async def test_tier_profile_put_then_get(client: AsyncClient) -> None:
    put = await client.put(
        "/api/v1/artists/artist-1/tier-profile",
        json={"tier": "verified", "base_rate_per_play": "0.75", "payout_ceiling": 50000},
    )
    assert put.status_code == 200
    assert put.json()["tier_multiplier"] == "1.5"

    get = await client.get("/api/v1/artists/artist-1/tier-profile")
    assert get.status_code == 200
    data = get.json()
    assert data["tier"] == "verified"
    assert data["base_rate_per_play"] == "0.75"
    assert data["payout_ceiling"] == 50000


async def test_tier_profile_explicit_multiplier(client: AsyncClient) -> None:
    response = await client.put(
        "/api/v1/artists/artist-2/tier-profile",
        json={"tier": "standard", "base_rate_per_play": "1", "tier_multiplier": "1.25"},
    )
    assert response.status_code == 200
    assert response.json()["tier_multiplier"] == "1.25"


async def test_tier_profile_validation(client: AsyncClient) -> None:
    response = await client.put(
        "/api/v1/artists/artist-1/tier-profile",
        json={"tier": "standard", "base_rate_per_play": "-1"},
    )
    assert response.status_code == 422


async def test_missing_tier_profile(client: AsyncClient) -> None:
    response = await client.get("/api/v1/artists/nobody/tier-profile")
    assert response.status_code == 404
    assert response.json()["error"] == "RESOURCE_NOT_FOUND"


async def test_seal_then_query_aggregate(client: AsyncClient, store) -> None:
    window_start = align_window_start(utc_now() - timedelta(hours=3), 3600)
    await store.increment("artist-1", "track-1", window_start, BucketDelta(valid=2, duration_ms=360_000))
    params = {"window_start": window_start.isoformat()}

    before = await client.get("/api/v1/aggregates/artist-1/track-1", params=params)
    assert before.status_code == 404

    sealed = await client.post("/api/v1/windows/seal")
    assert sealed.status_code == 200
    assert sealed.json()["bucket_count"] == 1
    assert len(sealed.json()["sealed_windows"]) == 1

    after = await client.get("/api/v1/aggregates/artist-1/track-1", params=params)
    assert after.status_code == 200
    assert after.json()["valid_play_count"] == 2
    assert after.json()["total_duration_ms"] == 360_000

    listed = await client.get(
        "/api/v1/aggregates",
        params={
            "start": window_start.isoformat(),
            "end": (window_start + timedelta(hours=1)).isoformat(),
            "artist_id": "artist-1",
        },
    )
    assert listed.status_code == 200
    assert [b["track_id"] for b in listed.json()] == ["track-1"]


async def test_second_seal_is_noop(client: AsyncClient, store) -> None:
    window_start = align_window_start(utc_now() - timedelta(hours=3), 3600)
    await store.increment("artist-1", "track-1", window_start, BucketDelta(valid=1))
    await client.post("/api/v1/windows/seal")

    again = await client.post("/api/v1/windows/seal")

    assert again.json() == {"sealed_windows": [], "bucket_count": 0}


async def test_aggregate_range_too_long(client: AsyncClient) -> None:
    start = align_window_start(utc_now(), 3600) - timedelta(days=100)
    response = await client.get(
        "/api/v1/aggregates",
        params={"start": start.isoformat(), "end": (start + timedelta(days=93)).isoformat()},
    )
    assert response.status_code == 400


async def test_rebuild_sealed_window_conflicts(client: AsyncClient, store) -> None:
    window_start = align_window_start(utc_now() - timedelta(hours=3), 3600)
    await store.increment("artist-1", "track-1", window_start, BucketDelta(valid=1))
    await client.post("/api/v1/windows/seal")

    response = await client.post(f"/api/v1/windows/{window_start.isoformat()}/rebuild")

    assert response.status_code == 409
    assert response.json()["error"] == "WINDOW_SEALED"


async def test_rebuild_window_still_accepting_events_conflicts(client: AsyncClient) -> None:
    window_start = align_window_start(utc_now(), 3600)

    response = await client.post(f"/api/v1/windows/{window_start.isoformat()}/rebuild")

    assert response.status_code == 409
    assert response.json()["error"] == "WINDOW_OPEN"


async def test_rebuild_closed_window(client: AsyncClient, store) -> None:
    window_start = align_window_start(utc_now() - timedelta(hours=3), 3600)
    await store.increment("artist-1", "track-1", window_start, BucketDelta(valid=7))

    response = await client.post(f"/api/v1/windows/{window_start.isoformat()}/rebuild")

    assert response.status_code == 200
    assert response.json()["events_replayed"] == 0
    assert await store.get("artist-1", "track-1", window_start) is None
