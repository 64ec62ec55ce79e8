"""Redis Pub/Sub notifications for recorded stream events.

Every recorded event is published to stream_events:recorded; events that
were not CLEAN are also published to stream_events:flagged for downstream
fraud alerting. Publishing is best effort and never fails ingestion.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any

import redis.asyncio as redis

from royalty_pipeline.core.constants import (
    CHANNEL_STREAM_EVENT_FLAGGED,
    CHANNEL_STREAM_EVENT_RECORDED,
)
from royalty_pipeline.domain.entities import FraudAnalysisResult, StreamEvent
from royalty_pipeline.domain.enums import FraudVerdict
from royalty_pipeline.shared.utils.datetime import utc_now

logger = logging.getLogger(__name__)


@dataclass
class StreamEventRecordedMessage:
    """Payload published for each recorded stream event."""

    event_id: str
    artist_id: str
    track_id: str
    listener_id: str
    event_timestamp: str
    verdict: str
    score: float
    flags: list[str]
    late: bool
    published_at: str

    @classmethod
    def build(
        cls, event: StreamEvent, analysis: FraudAnalysisResult, late: bool
    ) -> StreamEventRecordedMessage:
        return cls(
            event_id=event.event_id,
            artist_id=event.artist_id,
            track_id=event.track_id,
            listener_id=event.listener_id,
            event_timestamp=event.timestamp.isoformat(),
            verdict=analysis.verdict.value,
            score=analysis.score,
            flags=analysis.sorted_flags(),
            late=late,
            published_at=utc_now().isoformat(),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON publish."""
        return asdict(self)


class StreamEventPublisher:
    """IEventPublisher on Redis pub/sub.

    Pass the shared client for normal use; with redis_client=None the
    publisher is disabled and publish_recorded returns False.
    """

    def __init__(self, redis_client: redis.Redis | None = None) -> None:
        self.redis = redis_client

    def is_available(self) -> bool:
        """Return True if a Redis client is configured."""
        return self.redis is not None

    async def publish_recorded(
        self, event: StreamEvent, analysis: FraudAnalysisResult, late: bool
    ) -> bool:
        """Publish the recorded-event message.

        Returns:
            True if published, False if Redis is unavailable or the publish failed.
        """
        if not self.is_available() or self.redis is None:
            logger.debug("Redis not available, skipping publish")
            return False
        message = json.dumps(StreamEventRecordedMessage.build(event, analysis, late).to_dict())
        try:
            await self.redis.publish(CHANNEL_STREAM_EVENT_RECORDED, message)
            if analysis.verdict != FraudVerdict.CLEAN:
                await self.redis.publish(CHANNEL_STREAM_EVENT_FLAGGED, message)
        except redis.RedisError:
            logger.exception("Failed to publish recorded stream event %s", event.event_id)
            return False
        logger.debug("Published stream event %s (%s)", event.event_id, analysis.verdict.value)
        return True
