"""Redis-backed aggregation store.

Shared by every ingestion process. Each window is one hash of bucket
counters plus a sealed marker; Lua scripts make check-sealed-then-increment
and seal-then-snapshot atomic, so a seal is linearizable with increments.
A closed marker fences a window against ingestion before a rebuild reads
the audit log.
Listener and device history live in sorted sets scored by timestamp (ms).

All Redis failures surface as TransientStoreError.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any

import redis.asyncio as redis

from royalty_pipeline.application.dtos.aggregation import AggregateBucket, BucketDelta
from royalty_pipeline.domain.entities import StreamEvent
from royalty_pipeline.domain.exceptions import (
    TransientStoreError,
    ValidationError,
    WindowSealedError,
)
from royalty_pipeline.domain.value_objects import AggregationWindow
from royalty_pipeline.infrastructure.aggregation.keys import (
    COUNTER_DURATION,
    COUNTER_FLAGGED,
    COUNTER_VALID,
    bucket_field_prefix,
    bucket_hash_key,
    closed_marker_key,
    device_history_key,
    listener_history_key,
    open_windows_key,
    sealed_marker_key,
    split_bucket_field,
    window_epoch,
)
from royalty_pipeline.shared.telemetry.logging import get_logger
from royalty_pipeline.shared.utils.datetime import (
    ensure_utc,
    from_timestamp_utc,
    to_timestamp_ms,
)

logger = get_logger(__name__)

# KEYS: bucket hash, sealed marker, open windows, closed marker.
# ARGV: field prefix, valid, flagged, duration, window epoch.
_INCREMENT_LUA = """
if redis.call('EXISTS', KEYS[2]) == 1 or redis.call('EXISTS', KEYS[4]) == 1 then
  return 0
end
local prefix = ARGV[1]
if tonumber(ARGV[2]) > 0 then redis.call('HINCRBY', KEYS[1], prefix .. 'valid', ARGV[2]) end
if tonumber(ARGV[3]) > 0 then redis.call('HINCRBY', KEYS[1], prefix .. 'flagged', ARGV[3]) end
if tonumber(ARGV[4]) > 0 then redis.call('HINCRBY', KEYS[1], prefix .. 'duration', ARGV[4]) end
redis.call('ZADD', KEYS[3], ARGV[5], ARGV[5])
return 1
"""

# KEYS: bucket hash, sealed marker, open windows. ARGV: window epoch, retention seconds.
_SEAL_LUA = """
redis.call('SET', KEYS[2], '1')
redis.call('ZREM', KEYS[3], ARGV[1])
local retention = tonumber(ARGV[2])
if retention > 0 then
  redis.call('EXPIRE', KEYS[2], retention)
  if redis.call('EXISTS', KEYS[1]) == 1 then
    redis.call('EXPIRE', KEYS[1], retention)
  end
end
return redis.call('HGETALL', KEYS[1])
"""

# KEYS: bucket hash, sealed marker, open windows. ARGV: window epoch, then field/value pairs.
_REPLACE_LUA = """
if redis.call('EXISTS', KEYS[2]) == 1 then
  return 0
end
redis.call('DEL', KEYS[1])
if #ARGV > 1 then
  for i = 2, #ARGV, 2 do
    redis.call('HSET', KEYS[1], ARGV[i], ARGV[i + 1])
  end
  redis.call('ZADD', KEYS[3], ARGV[1], ARGV[1])
else
  redis.call('ZREM', KEYS[3], ARGV[1])
end
return 1
"""


def _parse_buckets(
    flat: list[Any] | dict[str, Any], window_start: datetime, window_end: datetime
) -> list[AggregateBucket]:
    """Build buckets from HGETALL output (flat list from a script, dict from the client)."""
    if isinstance(flat, dict):
        pairs = list(flat.items())
    else:
        pairs = list(zip(flat[0::2], flat[1::2]))
    counters: dict[tuple[str, str], dict[str, int]] = {}
    for raw_field, raw_value in pairs:
        artist_id, track_id, counter = split_bucket_field(_text(raw_field))
        counters.setdefault((artist_id, track_id), {})[counter] = int(raw_value)
    return [
        AggregateBucket(
            artist_id=artist_id,
            track_id=track_id,
            window_start=window_start,
            window_end=window_end,
            valid_play_count=values.get(COUNTER_VALID, 0),
            flagged_play_count=values.get(COUNTER_FLAGGED, 0),
            total_duration_ms=values.get(COUNTER_DURATION, 0),
        )
        for (artist_id, track_id), values in sorted(counters.items())
    ]


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class RedisAggregationStore:
    """IAggregationStore on a shared Redis instance (redis.asyncio)."""

    def __init__(
        self,
        client: redis.Redis,
        window_seconds: int = 3600,
        history_max_entries: int = 200,
        history_ttl_seconds: int = 86_400,
        sealed_retention_seconds: int = 7 * 86_400,
    ) -> None:
        self.client = client
        self.window_seconds = window_seconds
        self.history_max_entries = history_max_entries
        self.history_ttl_seconds = history_ttl_seconds
        self.sealed_retention_seconds = sealed_retention_seconds
        self._increment_script = client.register_script(_INCREMENT_LUA)
        self._seal_script = client.register_script(_SEAL_LUA)
        self._replace_script = client.register_script(_REPLACE_LUA)

    def _window(self, window_start: datetime) -> AggregationWindow:
        return AggregationWindow(start=ensure_utc(window_start), size_seconds=self.window_seconds)

    @staticmethod
    def _window_keys(window: AggregationWindow) -> list[str]:
        return [
            bucket_hash_key(window.start),
            sealed_marker_key(window.start),
            open_windows_key(),
        ]

    @asynccontextmanager
    async def _redis_call(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except redis.RedisError as e:
            logger.warning("Redis %s failed: %s", operation, e)
            raise TransientStoreError(
                f"Aggregation store unavailable during {operation}",
                store="redis",
                details={"operation": operation},
            ) from e

    async def increment(
        self,
        artist_id: str,
        track_id: str,
        window_start: datetime,
        delta: BucketDelta,
    ) -> None:
        window = self._window(window_start)
        async with self._redis_call("increment"):
            applied = await self._increment_script(
                keys=[*self._window_keys(window), closed_marker_key(window.start)],
                args=[
                    bucket_field_prefix(artist_id, track_id),
                    delta.valid,
                    delta.flagged,
                    delta.duration_ms,
                    window.epoch_start,
                ],
            )
        if not int(applied):
            raise WindowSealedError(window.start)

    async def seal(self, window_start: datetime, window_end: datetime) -> list[AggregateBucket]:
        snapshot: list[AggregateBucket] = []
        window = self._window(window_start)
        end = ensure_utc(window_end)
        while window.start < end:
            async with self._redis_call("seal"):
                flat = await self._seal_script(
                    keys=self._window_keys(window),
                    args=[window.epoch_start, self.sealed_retention_seconds],
                )
            snapshot.extend(_parse_buckets(flat or [], window.start, window.end))
            window = AggregationWindow(start=window.end, size_seconds=self.window_seconds)
        return snapshot

    async def get(
        self, artist_id: str, track_id: str, window_start: datetime
    ) -> AggregateBucket | None:
        window = self._window(window_start)
        prefix = bucket_field_prefix(artist_id, track_id)
        async with self._redis_call("get"):
            valid, flagged, duration = await self.client.hmget(
                bucket_hash_key(window.start),
                [prefix + COUNTER_VALID, prefix + COUNTER_FLAGGED, prefix + COUNTER_DURATION],
            )
        if valid is None and flagged is None and duration is None:
            return None
        return AggregateBucket(
            artist_id=artist_id,
            track_id=track_id,
            window_start=window.start,
            window_end=window.end,
            valid_play_count=int(valid or 0),
            flagged_play_count=int(flagged or 0),
            total_duration_ms=int(duration or 0),
        )

    async def is_sealed(self, window_start: datetime) -> bool:
        async with self._redis_call("is_sealed"):
            return bool(await self.client.exists(sealed_marker_key(ensure_utc(window_start))))

    async def close_window(self, window_start: datetime) -> None:
        window = self._window(window_start)
        ttl = self.sealed_retention_seconds or None
        async with self._redis_call("close_window"):
            await self.client.set(closed_marker_key(window.start), "1", ex=ttl)

    async def replace_window(
        self, window_start: datetime, buckets: list[AggregateBucket]
    ) -> None:
        window = self._window(window_start)
        args: list[Any] = [window.epoch_start]
        for bucket in buckets:
            prefix = bucket_field_prefix(bucket.artist_id, bucket.track_id)
            args.extend(
                [
                    prefix + COUNTER_VALID,
                    bucket.valid_play_count,
                    prefix + COUNTER_FLAGGED,
                    bucket.flagged_play_count,
                    prefix + COUNTER_DURATION,
                    bucket.total_duration_ms,
                ]
            )
        async with self._redis_call("replace_window"):
            replaced = await self._replace_script(keys=self._window_keys(window), args=args)
        if not int(replaced):
            raise WindowSealedError(window.start)

    async def open_window_starts(self, before: datetime | None = None) -> list[datetime]:
        upper = "+inf" if before is None else f"({window_epoch(ensure_utc(before))}"
        async with self._redis_call("open_window_starts"):
            members = await self.client.zrangebyscore(open_windows_key(), "-inf", upper)
        return [from_timestamp_utc(int(_text(m))) for m in members]

    async def remember(self, event: StreamEvent) -> None:
        member = json.dumps(event.to_dict(), sort_keys=True)
        score = to_timestamp_ms(event.timestamp)
        keys = (listener_history_key(event.listener_id), device_history_key(event.device_id))
        async with self._redis_call("remember"):
            async with self.client.pipeline(transaction=True) as pipe:
                for key in keys:
                    pipe.zadd(key, {member: score})
                    pipe.zremrangebyrank(key, 0, -(self.history_max_entries + 1))
                    pipe.expire(key, self.history_ttl_seconds)
                await pipe.execute()

    async def recent_history(
        self,
        listener_id: str,
        device_id: str,
        until: datetime,
        lookback_seconds: int,
    ) -> list[StreamEvent]:
        upper = ensure_utc(until)
        lower = upper - timedelta(seconds=lookback_seconds)
        min_score, max_score = to_timestamp_ms(lower), to_timestamp_ms(upper)
        async with self._redis_call("recent_history"):
            async with self.client.pipeline(transaction=False) as pipe:
                pipe.zrangebyscore(listener_history_key(listener_id), min_score, max_score)
                pipe.zrangebyscore(device_history_key(device_id), min_score, max_score)
                listener_members, device_members = await pipe.execute()

        events: dict[str, StreamEvent] = {}
        for raw in [*listener_members, *device_members]:
            try:
                event = StreamEvent.from_dict(json.loads(_text(raw)))
            except (ValueError, ValidationError) as e:
                logger.warning("Skipping malformed history entry: %s", e)
                continue
            events[event.event_id] = event
        return sorted(events.values(), key=lambda e: e.timestamp)
