"""Stream event ORM model. Append-only audit log; immutable after creation."""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Connection,
    DateTime,
    Float,
    Index,
    String,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, Mapper, mapped_column
from sqlalchemy.sql import func

from royalty_pipeline.infrastructure.persistence.database import Base


class StreamEventLog(Base):
    """One played stream with its fraud analysis. Table: stream_event.

    window_start is the aggregation window the event belongs to; late rows
    arrived after that window closed and never reached the aggregates.
    """

    __tablename__ = "stream_event"

    event_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    track_id: Mapped[str] = mapped_column(String(128), nullable=False)
    artist_id: Mapped[str] = mapped_column(String(128), nullable=False)
    listener_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    device_id: Mapped[str] = mapped_column(String(128), nullable=False)
    event_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    duration_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    track_duration_ms: Mapped[int | None] = mapped_column(BigInteger)
    subscription_tier: Mapped[str] = mapped_column(String(16), nullable=False)
    source_ip: Mapped[str] = mapped_column(String(45), nullable=False)
    window_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    fraud_score: Mapped[float] = mapped_column(Float, nullable=False)
    fraud_flags: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    verdict: Mapped[str] = mapped_column(String(16), nullable=False)
    late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_stream_event_artist_time", "artist_id", "event_timestamp"),
        Index("ix_stream_event_window", "window_start", "late"),
        CheckConstraint("duration_ms >= 0", name="ck_stream_event_duration_non_negative"),
        CheckConstraint(
            "fraud_score >= 0 AND fraud_score <= 1", name="ck_stream_event_score_range"
        ),
        CheckConstraint(
            "verdict IN ('clean', 'suspicious', 'rejected')", name="ck_stream_event_verdict"
        ),
    )


@event.listens_for(StreamEventLog, "before_update")
def _prevent_stream_event_updates(
    _mapper: Mapper[Any], _connection: Connection, _target: StreamEventLog
) -> None:
    """The audit log is append-only; updates are forbidden."""
    raise ValueError(
        "Stream events are immutable and cannot be updated. "
        "Rebuild the affected window from the log instead."
    )
