"""DTOs for stream event ingestion and the audit log."""

from dataclasses import dataclass
from datetime import datetime

from royalty_pipeline.domain.entities import FraudAnalysisResult, StreamEvent
from royalty_pipeline.domain.enums import FraudVerdict


@dataclass(frozen=True)
class StreamEventRecord:
    """One row of the append-only audit log: event plus its fraud analysis.

    late is True when the event arrived after its window closed (or the
    window was already sealed); late events never reach the aggregates.
    """

    event: StreamEvent
    analysis: FraudAnalysisResult
    window_start: datetime
    late: bool = False
    recorded_at: datetime | None = None


@dataclass(frozen=True)
class RecordResult:
    """Outcome of Event Tracker record().

    accepted means the play counts toward the artist's aggregates as valid
    (CLEAN) or flagged (SUSPICIOUS). REJECTED plays are recorded for audit
    but not accepted. late and aggregated report what happened to the
    aggregate increment.
    """

    event_id: str
    accepted: bool
    verdict: FraudVerdict
    score: float
    flags: tuple[str, ...]
    late: bool = False
    aggregated: bool = False


@dataclass(frozen=True)
class ArtistStreamStats:
    """Stream counts for an artist over a lookback period (from the audit log)."""

    artist_id: str
    period_start: datetime
    period_end: datetime
    total_streams: int
    valid_streams: int
    flagged_streams: int
    rejected_streams: int
    late_streams: int
    estimated_earnings: int | None
    """Valid plays at the artist's current rate, in minor units; None without a tier profile."""
