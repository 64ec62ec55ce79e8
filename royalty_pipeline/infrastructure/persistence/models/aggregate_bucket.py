"""Sealed aggregate bucket and sealed window ORM models. Immutable snapshots."""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Connection,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, Mapper, mapped_column

from royalty_pipeline.infrastructure.persistence.database import Base
from royalty_pipeline.infrastructure.persistence.models.mixins import CuidMixin


class AggregateBucketSnapshot(CuidMixin, Base):
    """Counters of one (artist, track, window) at seal time. Table: aggregate_bucket."""

    __tablename__ = "aggregate_bucket"

    artist_id: Mapped[str] = mapped_column(String(128), nullable=False)
    track_id: Mapped[str] = mapped_column(String(128), nullable=False)
    window_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    window_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_play_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    flagged_play_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_duration_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    sealed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "artist_id", "track_id", "window_start", name="uq_aggregate_bucket_key"
        ),
        Index("ix_aggregate_bucket_artist_window", "artist_id", "window_start"),
        Index("ix_aggregate_bucket_window", "window_start"),
        CheckConstraint(
            "valid_play_count >= 0 AND flagged_play_count >= 0 AND total_duration_ms >= 0",
            name="ck_aggregate_bucket_non_negative",
        ),
    )


class SealedWindow(Base):
    """Durable record that a window was sealed, empty windows included. Table: sealed_window."""

    __tablename__ = "sealed_window"

    window_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)
    window_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    bucket_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sealed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


@event.listens_for(AggregateBucketSnapshot, "before_update")
@event.listens_for(SealedWindow, "before_update")
def _prevent_snapshot_updates(
    _mapper: Mapper[Any], _connection: Connection, _target: Any
) -> None:
    """Sealed snapshots are read-only."""
    raise ValueError("Sealed aggregate snapshots are immutable and cannot be updated.")
