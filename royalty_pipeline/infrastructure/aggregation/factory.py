"""Factory for the aggregation store and the shared Redis client."""

import redis.asyncio as redis

from royalty_pipeline.application.interfaces.services import IAggregationStore
from royalty_pipeline.core.config import Settings
from royalty_pipeline.infrastructure.aggregation.memory_store import InMemoryAggregationStore
from royalty_pipeline.infrastructure.aggregation.redis_store import RedisAggregationStore


def create_redis_client(settings: Settings) -> redis.Redis:
    """Redis client used by the aggregation store and the event publisher."""
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        password=settings.redis_password.get_secret_value() if settings.redis_password else None,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=settings.redis_socket_timeout,
        socket_keepalive=True,
    )


def create_aggregation_store(
    settings: Settings, redis_client: redis.Redis | None = None
) -> IAggregationStore:
    """Return the store selected by AGGREGATION_BACKEND ('redis' or 'memory')."""
    if settings.aggregation_backend == "memory":
        return InMemoryAggregationStore(
            window_seconds=settings.aggregation_window_seconds,
            history_max_entries=settings.history_max_entries,
            sealed_retention_seconds=settings.aggregation_sealed_retention_seconds,
        )
    if redis_client is None:
        raise ValueError("aggregation_backend 'redis' requires a Redis client")
    return RedisAggregationStore(
        redis_client,
        window_seconds=settings.aggregation_window_seconds,
        history_max_entries=settings.history_max_entries,
        history_ttl_seconds=settings.history_ttl_seconds,
        sealed_retention_seconds=settings.aggregation_sealed_retention_seconds,
    )
