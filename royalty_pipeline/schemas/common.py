"""Shared schema helpers."""

from datetime import datetime, timezone
from typing import Any


def ensure_aware_datetime(v: datetime | str) -> datetime:
    """Accept datetime or ISO string; treat naive datetimes as UTC."""
    if isinstance(v, str):
        dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
    else:
        dt = v
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def aware_or_none(v: Any) -> Any:
    if v is None:
        return None
    return ensure_aware_datetime(v)
