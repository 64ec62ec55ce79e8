"""Redis key builders for the aggregation store. Single place for key format (DRY).

Window keys use the window start in Unix seconds. Identifiers embedded in
bucket hash fields must not contain FIELD_SEP.
"""

from datetime import datetime

from royalty_pipeline.core.constants import (
    AGG_OPEN_WINDOWS,
    AGG_PREFIX_BUCKETS,
    AGG_PREFIX_CLOSED,
    AGG_PREFIX_SEALED,
    FIELD_SEP,
    HISTORY_PREFIX_DEVICE,
    HISTORY_PREFIX_LISTENER,
    KEY_SEP,
)

COUNTER_VALID = "valid"
COUNTER_FLAGGED = "flagged"
COUNTER_DURATION = "duration"


def _validate_field_component(value: str, name: str) -> None:
    """Raise ValueError if value contains the bucket field separator."""
    if FIELD_SEP in value:
        raise ValueError(f"Key component {name!r} must not contain the field separator")


def window_epoch(window_start: datetime) -> int:
    return int(window_start.timestamp())


def bucket_hash_key(window_start: datetime) -> str:
    """Hash holding every bucket counter of one window."""
    return f"{AGG_PREFIX_BUCKETS}{KEY_SEP}{window_epoch(window_start)}"


def sealed_marker_key(window_start: datetime) -> str:
    return f"{AGG_PREFIX_SEALED}{KEY_SEP}{window_epoch(window_start)}"


def closed_marker_key(window_start: datetime) -> str:
    """Set while a window is fenced against ingestion (rebuild in progress or done)."""
    return f"{AGG_PREFIX_CLOSED}{KEY_SEP}{window_epoch(window_start)}"


def open_windows_key() -> str:
    """Sorted set of window starts with counters that are not sealed yet."""
    return AGG_OPEN_WINDOWS


def bucket_field_prefix(artist_id: str, track_id: str) -> str:
    """Prefix of the hash fields for one (artist, track) bucket; the counter name follows."""
    _validate_field_component(artist_id, "artist_id")
    _validate_field_component(track_id, "track_id")
    return f"{artist_id}{FIELD_SEP}{track_id}{FIELD_SEP}"


def split_bucket_field(field: str) -> tuple[str, str, str]:
    """Return (artist_id, track_id, counter) from a bucket hash field."""
    artist_id, track_id, counter = field.split(FIELD_SEP)
    return artist_id, track_id, counter


def listener_history_key(listener_id: str) -> str:
    return f"{HISTORY_PREFIX_LISTENER}{KEY_SEP}{listener_id}"


def device_history_key(device_id: str) -> str:
    return f"{HISTORY_PREFIX_DEVICE}{KEY_SEP}{device_id}"
