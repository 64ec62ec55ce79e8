"""Stream event ingestion and artist stats schemas."""

from datetime import datetime
from typing import Any

from pydantic import AwareDatetime, BaseModel, Field, field_validator

from royalty_pipeline.domain.enums import FraudVerdict, SubscriptionTier
from royalty_pipeline.schemas.common import ensure_aware_datetime

# Printable identifiers only; control characters collide with store key separators.
ID_PATTERN = r"^[^\x00-\x1f\x7f]+$"


class StreamEventCreateRequest(BaseModel):
    """One playback event reported by a client. event_id is generated when omitted."""

    event_id: str | None = Field(
        default=None, min_length=1, max_length=128, pattern=ID_PATTERN
    )
    track_id: str = Field(..., min_length=1, max_length=128, pattern=ID_PATTERN)
    artist_id: str = Field(..., min_length=1, max_length=128, pattern=ID_PATTERN)
    listener_id: str = Field(..., min_length=1, max_length=128, pattern=ID_PATTERN)
    device_id: str = Field(..., min_length=1, max_length=128, pattern=ID_PATTERN)
    timestamp: AwareDatetime
    duration_ms: int = Field(..., ge=0)
    track_duration_ms: int | None = Field(default=None, gt=0)
    subscription_tier: SubscriptionTier
    source_ip: str = Field(..., min_length=2, max_length=45)

    @field_validator("timestamp", mode="before")
    @classmethod
    def timestamp_aware(cls, v: Any) -> datetime:
        if v is None:
            raise ValueError("timestamp is required")
        return ensure_aware_datetime(v)


class StreamEventRecordedResponse(BaseModel):
    """Outcome of ingestion: fraud verdict and what happened to the aggregates."""

    event_id: str
    accepted: bool
    verdict: FraudVerdict
    score: float
    flags: list[str]
    late: bool
    aggregated: bool


class ArtistStreamStatsResponse(BaseModel):
    artist_id: str
    period_start: AwareDatetime
    period_end: AwareDatetime
    total_streams: int
    valid_streams: int
    flagged_streams: int
    rejected_streams: int
    late_streams: int
    estimated_earnings: int | None = Field(
        default=None, description="Valid plays at the current rate, minor currency units"
    )
