"""UTC datetime helpers.

Every timestamp in the pipeline (event time, window bounds, settlement
periods) is timezone-aware UTC. Use these helpers instead of
datetime.now() or datetime.utcnow().
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return the current UTC datetime with timezone info."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize a datetime to aware UTC.

    Naive values are assumed to already be UTC; aware values are converted.
    Use at persistence and Redis boundaries, where drivers may hand back
    naive datetimes.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def from_timestamp_utc(timestamp: float) -> datetime:
    """Create a UTC-aware datetime from a Unix timestamp in seconds."""
    return datetime.fromtimestamp(timestamp, tz=UTC)


def from_timestamp_ms_utc(timestamp_ms: int) -> datetime:
    """Create a UTC-aware datetime from a millisecond Unix timestamp.

    Redis history sorted sets are scored in milliseconds.
    """
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)


def to_timestamp_ms(dt: datetime) -> int:
    """Return the millisecond Unix timestamp for an aware datetime."""
    return int(ensure_utc(dt).timestamp() * 1000)
