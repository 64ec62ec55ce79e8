"""Stream event ingestion endpoint."""

from datetime import timedelta

from httpx import AsyncClient

from royalty_pipeline.shared.utils.datetime import utc_now


def _payload(event_id: str = "ev-1", **overrides) -> dict:
    body = {
        "event_id": event_id,
        "track_id": "track-1",
        "artist_id": "artist-1",
        "listener_id": "listener-1",
        "device_id": "device-1",
        "timestamp": (utc_now() - timedelta(seconds=1)).isoformat(),
        "duration_ms": 180_000,
        "track_duration_ms": 200_000,
        "subscription_tier": "premium",
        "source_ip": "203.0.113.10",
    }
    body.update(overrides)
    return body


async def test_record_clean_play(client: AsyncClient, store) -> None:
    response = await client.post("/api/v1/stream-events", json=_payload())

    assert response.status_code == 201
    data = response.json()
    assert data["accepted"] is True
    assert data["verdict"] == "clean"
    assert data["flags"] == []
    assert data["late"] is False
    assert data["aggregated"] is True


async def test_event_id_generated_when_omitted(client: AsyncClient, fake_db) -> None:
    body = _payload()
    del body["event_id"]

    response = await client.post("/api/v1/stream-events", json=body)

    assert response.status_code == 201
    event_id = response.json()["event_id"]
    assert event_id
    assert [r.event.event_id for r in fake_db.state.records.values()] == [event_id]


async def test_separator_in_identifier_rejected_before_logging(
    client: AsyncClient, fake_db
) -> None:
    response = await client.post(
        "/api/v1/stream-events", json=_payload("sep-1", artist_id="artist\x1f1")
    )

    assert response.status_code == 422
    assert response.json()["error"] == "VALIDATION_ERROR"
    assert len(fake_db.state.records) == 0


async def test_duplicate_event_conflicts(client: AsyncClient, fake_db) -> None:
    first = await client.post("/api/v1/stream-events", json=_payload("dup-1"))
    second = await client.post("/api/v1/stream-events", json=_payload("dup-1"))

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["error"] == "DUPLICATE_EVENT"
    assert len(fake_db.state.records) == 1


async def test_short_play_is_flagged(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/stream-events", json=_payload("short-1", duration_ms=5_000)
    )

    assert response.status_code == 201
    assert "SHORT_PLAY" in response.json()["flags"]


async def test_future_timestamp_rejected(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/stream-events",
        json=_payload("future-1", timestamp=(utc_now() + timedelta(hours=1)).isoformat()),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


async def test_invalid_body_rejected(client: AsyncClient) -> None:
    missing = _payload()
    del missing["listener_id"]
    assert (await client.post("/api/v1/stream-events", json=missing)).status_code == 422

    negative = _payload(duration_ms=-1)
    assert (await client.post("/api/v1/stream-events", json=negative)).status_code == 422

    tier = _payload(subscription_tier="platinum")
    assert (await client.post("/api/v1/stream-events", json=tier)).status_code == 422


async def test_stream_stats_reflect_ingestion(client: AsyncClient) -> None:
    await client.post("/api/v1/stream-events", json=_payload("s-1"))
    await client.post("/api/v1/stream-events", json=_payload("s-2", duration_ms=5_000))

    response = await client.get("/api/v1/artists/artist-1/stream-stats", params={"days": 1})

    assert response.status_code == 200
    data = response.json()
    assert data["total_streams"] == 2
    assert data["valid_streams"] + data["flagged_streams"] + data["rejected_streams"] == 2
    assert data["estimated_earnings"] is None


async def test_stream_stats_days_bounds(client: AsyncClient) -> None:
    response = await client.get("/api/v1/artists/artist-1/stream-stats", params={"days": 0})
    assert response.status_code == 422
