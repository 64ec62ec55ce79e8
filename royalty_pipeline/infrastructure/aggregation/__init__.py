"""Aggregation store backends (Redis and in-process)."""

from royalty_pipeline.infrastructure.aggregation.factory import (
    create_aggregation_store,
    create_redis_client,
)
from royalty_pipeline.infrastructure.aggregation.memory_store import InMemoryAggregationStore
from royalty_pipeline.infrastructure.aggregation.redis_store import RedisAggregationStore

__all__ = [
    "InMemoryAggregationStore",
    "RedisAggregationStore",
    "create_aggregation_store",
    "create_redis_client",
]
