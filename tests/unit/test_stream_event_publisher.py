"""Redis pub/sub notifications for recorded stream events."""

import json
from unittest.mock import AsyncMock, MagicMock

import redis.asyncio as redis

from royalty_pipeline.core.constants import (
    CHANNEL_STREAM_EVENT_FLAGGED,
    CHANNEL_STREAM_EVENT_RECORDED,
)
from royalty_pipeline.domain.entities import FraudAnalysisResult
from royalty_pipeline.domain.enums import FraudFlag, FraudVerdict
from royalty_pipeline.infrastructure.messaging import StreamEventPublisher


def _analysis(event_id: str, verdict: FraudVerdict) -> FraudAnalysisResult:
    flags = frozenset() if verdict == FraudVerdict.CLEAN else frozenset({FraudFlag.REPEAT_ABUSE})
    return FraudAnalysisResult(event_id=event_id, score=0.3, flags=flags, verdict=verdict)


async def test_disabled_without_client(event_factory) -> None:
    publisher = StreamEventPublisher(None)
    event = event_factory()
    assert not publisher.is_available()
    result = await publisher.publish_recorded(
        event, _analysis(event.event_id, FraudVerdict.CLEAN), False
    )
    assert result is False


async def test_clean_event_published_once(event_factory) -> None:
    client = MagicMock()
    client.publish = AsyncMock()
    event = event_factory()

    ok = await StreamEventPublisher(client).publish_recorded(
        event, _analysis(event.event_id, FraudVerdict.CLEAN), False
    )

    assert ok
    channel, payload = client.publish.await_args.args
    assert channel == CHANNEL_STREAM_EVENT_RECORDED
    message = json.loads(payload)
    assert message["event_id"] == event.event_id
    assert message["verdict"] == "clean"
    assert message["late"] is False


async def test_flagged_event_also_published_to_flagged_channel(event_factory) -> None:
    client = MagicMock()
    client.publish = AsyncMock()
    event = event_factory()

    await StreamEventPublisher(client).publish_recorded(
        event, _analysis(event.event_id, FraudVerdict.SUSPICIOUS), True
    )

    channels = [call.args[0] for call in client.publish.await_args_list]
    assert channels == [CHANNEL_STREAM_EVENT_RECORDED, CHANNEL_STREAM_EVENT_FLAGGED]
    assert json.loads(client.publish.await_args.args[1])["flags"] == ["REPEAT_ABUSE"]


async def test_redis_failure_returns_false(event_factory) -> None:
    client = MagicMock()
    client.publish = AsyncMock(side_effect=redis.ConnectionError("down"))
    event = event_factory()

    ok = await StreamEventPublisher(client).publish_recorded(
        event, _analysis(event.event_id, FraudVerdict.CLEAN), False
    )

    assert ok is False
