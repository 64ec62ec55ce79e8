"""Royalty statement ledger, status history and payment status ORM models.

Statements are never deleted and their money columns never change; status,
review and finalization columns are the only mutable fields. Corrections
are new rows with sequence > 0.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Connection,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, Mapper, mapped_column
from sqlalchemy.sql import func

from royalty_pipeline.infrastructure.persistence.database import Base
from royalty_pipeline.infrastructure.persistence.models.mixins import (
    CuidMixin,
    TimestampMixin,
)


class RoyaltyStatement(CuidMixin, TimestampMixin, Base):
    """Per-artist, per-period royalty statement. Table: royalty_statement."""

    __tablename__ = "royalty_statement"

    artist_id: Mapped[str] = mapped_column(String(128), nullable=False)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    corrects_statement_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("royalty_statement.id", ondelete="RESTRICT"), nullable=True
    )
    gross_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fraud_deduction: Mapped[int] = mapped_column(BigInteger, nullable=False)
    net_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    offset_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    valid_play_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    flagged_play_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    bucket_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    requires_manual_review: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    review_reason: Mapped[str | None] = mapped_column(Text)
    calculation_metadata: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, default=dict
    )
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint(
            "artist_id",
            "period_start",
            "period_end",
            "sequence",
            name="uq_royalty_statement_artist_period_sequence",
        ),
        Index("ix_royalty_statement_period", "period_start", "period_end"),
        Index("ix_royalty_statement_artist", "artist_id", "period_start"),
        CheckConstraint("net_amount >= 0", name="ck_royalty_statement_net_non_negative"),
        CheckConstraint(
            "gross_amount >= 0 AND fraud_deduction >= 0",
            name="ck_royalty_statement_amounts_non_negative",
        ),
        CheckConstraint("period_start < period_end", name="ck_royalty_statement_period"),
        CheckConstraint(
            "(sequence = 0 AND corrects_statement_id IS NULL) "
            "OR (sequence > 0 AND corrects_statement_id IS NOT NULL)",
            name="ck_royalty_statement_correction_ref",
        ),
        CheckConstraint(
            "status IN ('pending', 'calculated', 'approved', 'paid', 'failed', 'disputed')",
            name="ck_royalty_statement_status",
        ),
    )


# Columns fixed at insert; only status/review/finalization may change.
_IMMUTABLE_STATEMENT_COLUMNS = (
    "artist_id",
    "period_start",
    "period_end",
    "sequence",
    "corrects_statement_id",
    "gross_amount",
    "fraud_deduction",
    "net_amount",
    "offset_amount",
    "currency",
    "valid_play_count",
    "flagged_play_count",
    "bucket_count",
    "calculation_metadata",
)


@event.listens_for(RoyaltyStatement, "before_update")
def _prevent_statement_amount_updates(
    _mapper: Mapper[Any], _connection: Connection, target: RoyaltyStatement
) -> None:
    """Money columns are immutable; corrections are new statements."""
    state = inspect(target)
    changed = [
        name
        for name in _IMMUTABLE_STATEMENT_COLUMNS
        if state.attrs[name].history.has_changes()
    ]
    if changed:
        raise ValueError(
            f"Royalty statement columns {changed} are immutable. Issue a correction instead."
        )


class StatementTransition(CuidMixin, Base):
    """Append-only status history of a statement. Table: statement_transition."""

    __tablename__ = "statement_transition"

    statement_id: Mapped[str] = mapped_column(
        String, ForeignKey("royalty_statement.id", ondelete="RESTRICT"), nullable=False
    )
    from_status: Mapped[str | None] = mapped_column(String(16))
    to_status: Mapped[str] = mapped_column(String(16), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    # Transitions written in one transaction must still order by occurred_at.
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.clock_timestamp(), nullable=False
    )

    __table_args__ = (
        Index("ix_statement_transition_statement", "statement_id", "occurred_at"),
    )


@event.listens_for(StatementTransition, "before_update")
def _prevent_transition_updates(
    _mapper: Mapper[Any], _connection: Connection, _target: StatementTransition
) -> None:
    """Status history is append-only."""
    raise ValueError("Statement transitions are immutable and cannot be updated.")


class PaymentStatus(TimestampMixin, Base):
    """Payout handoff state per statement. Table: payment_status."""

    __tablename__ = "payment_status"

    statement_id: Mapped[str] = mapped_column(
        String, ForeignKey("royalty_statement.id", ondelete="RESTRICT"), primary_key=True
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reference_id: Mapped[str | None] = mapped_column(String(255))
    last_error: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'paid', 'failed')",
            name="ck_payment_status_status",
        ),
        CheckConstraint("attempts >= 0", name="ck_payment_status_attempts"),
    )
