"""DTOs for windowed aggregation (no dependency on ORM or presentation schemas)."""

from dataclasses import dataclass, replace
from datetime import datetime


@dataclass(frozen=True)
class BucketDelta:
    """Increment applied to one (artist, track, window) bucket."""

    valid: int = 0
    flagged: int = 0
    duration_ms: int = 0

    def __post_init__(self) -> None:
        if self.valid < 0 or self.flagged < 0 or self.duration_ms < 0:
            raise ValueError("Bucket deltas are monotonic; negative values are not allowed")


@dataclass(frozen=True)
class AggregateBucket:
    """Windowed counters for one (artist, track) pair.

    Keyed by (artist_id, track_id, window_start). total_duration_ms sums the
    durations of counted (valid and flagged) plays.
    """

    artist_id: str
    track_id: str
    window_start: datetime
    window_end: datetime
    valid_play_count: int = 0
    flagged_play_count: int = 0
    total_duration_ms: int = 0

    @property
    def key(self) -> tuple[str, str, datetime]:
        return (self.artist_id, self.track_id, self.window_start)

    def apply(self, delta: BucketDelta) -> "AggregateBucket":
        """Return a copy with delta added."""
        return replace(
            self,
            valid_play_count=self.valid_play_count + delta.valid,
            flagged_play_count=self.flagged_play_count + delta.flagged,
            total_duration_ms=self.total_duration_ms + delta.duration_ms,
        )


@dataclass(frozen=True)
class SealedWindowResult:
    """Durable record that a window was sealed (empty windows included)."""

    window_start: datetime
    window_end: datetime
    bucket_count: int
    sealed_at: datetime


@dataclass(frozen=True)
class SealRunResult:
    """Result of sealing due windows."""

    sealed_windows: tuple[datetime, ...]
    """Window starts sealed by this run (already-sealed windows are not listed)."""

    bucket_count: int
    """Number of bucket snapshots persisted by this run."""


@dataclass(frozen=True)
class RebuildResult:
    """Result of replaying the audit log into one open window."""

    window_start: datetime
    events_replayed: int
    bucket_count: int
