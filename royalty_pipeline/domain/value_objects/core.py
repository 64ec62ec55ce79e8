"""Domain value objects for the royalty pipeline.

Value objects are immutable types that represent domain concepts with
self-validation. They have no identity, only value. Aggregation windows
are fixed-size and aligned to the Unix epoch; settlement periods are a
whole number of windows.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta

from royalty_pipeline.shared.utils.datetime import ensure_utc, from_timestamp_utc


def align_window_start(ts: datetime, window_seconds: int) -> datetime:
    """Return the start of the epoch-aligned window containing ts."""
    seconds = int(ensure_utc(ts).timestamp())
    return from_timestamp_utc(seconds - seconds % window_seconds)


@dataclass(frozen=True)
class AggregationWindow:
    """Value object for one fixed-size aggregation window [start, end)."""

    start: datetime
    size_seconds: int

    def __post_init__(self) -> None:
        if self.size_seconds <= 0:
            raise ValueError("Window size must be positive")
        if self.start.tzinfo is None:
            raise ValueError("Window start must be timezone-aware")
        if int(self.start.timestamp()) % self.size_seconds:
            raise ValueError(
                f"Window start {self.start.isoformat()} is not aligned to {self.size_seconds}s"
            )

    @classmethod
    def containing(cls, ts: datetime, size_seconds: int) -> "AggregationWindow":
        """Return the window that contains ts."""
        return cls(start=align_window_start(ts, size_seconds), size_seconds=size_seconds)

    @property
    def end(self) -> datetime:
        return self.start + timedelta(seconds=self.size_seconds)

    @property
    def epoch_start(self) -> int:
        """Window start as Unix seconds (storage key)."""
        return int(self.start.timestamp())

    def closes_at(self, grace_seconds: int) -> datetime:
        """Return the instant after which no increment is accepted."""
        return self.end + timedelta(seconds=grace_seconds)

    def is_closed(self, now: datetime, grace_seconds: int) -> bool:
        """Return whether now is past window end plus grace."""
        return ensure_utc(now) >= self.closes_at(grace_seconds)


@dataclass(frozen=True)
class SettlementPeriod:
    """Value object for an artist-facing billing window [start, end).

    Both bounds are timezone-aware and the period must be non-empty.
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("Settlement period bounds must be timezone-aware")
        if self.start >= self.end:
            raise ValueError("Settlement period start must be before end")

    @classmethod
    def previous_day(cls, now: datetime) -> "SettlementPeriod":
        """Return the last complete UTC day before now."""
        today = ensure_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
        return cls(start=today - timedelta(days=1), end=today)

    @classmethod
    def previous_week(cls, now: datetime) -> "SettlementPeriod":
        """Return the last complete ISO week (Monday 00:00 UTC to Monday 00:00 UTC)."""
        today = ensure_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
        this_monday = today - timedelta(days=today.weekday())
        return cls(start=this_monday - timedelta(days=7), end=this_monday)

    def is_aligned(self, window_seconds: int) -> bool:
        """Return whether both bounds fall on window boundaries."""
        return (
            int(self.start.timestamp()) % window_seconds == 0
            and int(self.end.timestamp()) % window_seconds == 0
        )

    def windows(self, window_seconds: int) -> Iterator[AggregationWindow]:
        """Yield every aggregation window in the period, oldest first."""
        current = align_window_start(self.start, window_seconds)
        while current < self.end:
            yield AggregationWindow(start=current, size_seconds=window_seconds)
            current += timedelta(seconds=window_seconds)
