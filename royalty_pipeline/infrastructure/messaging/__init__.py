"""Messaging: Redis pub/sub notifications for recorded stream events."""

from royalty_pipeline.infrastructure.messaging.redis_pubsub import (
    StreamEventPublisher,
    StreamEventRecordedMessage,
)

__all__ = ["StreamEventPublisher", "StreamEventRecordedMessage"]
