"""Aggregate bucket and window administration schemas."""

from datetime import datetime
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator

from royalty_pipeline.schemas.common import aware_or_none


class AggregateBucketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    artist_id: str
    track_id: str
    window_start: AwareDatetime
    window_end: AwareDatetime
    valid_play_count: int
    flagged_play_count: int
    total_duration_ms: int


class SealWindowsRequest(BaseModel):
    """Optional cut-off; defaults to now. Only closed windows are sealed."""

    now: AwareDatetime | None = None

    @field_validator("now", mode="before")
    @classmethod
    def now_aware(cls, v: Any) -> datetime | None:
        return aware_or_none(v)


class SealWindowsResponse(BaseModel):
    sealed_windows: list[AwareDatetime]
    bucket_count: int


class RebuildWindowResponse(BaseModel):
    window_start: AwareDatetime
    events_replayed: int
    bucket_count: int = Field(..., description="Buckets written to the live store")
