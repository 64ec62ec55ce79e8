"""Initial schema: stream events, sealed aggregates, tier profiles, statements, payments

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create royalty pipeline schema."""
    # Stream event audit log (append-only)
    op.create_table(
        "stream_event",
        sa.Column("event_id", sa.String(128), nullable=False),
        sa.Column("track_id", sa.String(128), nullable=False),
        sa.Column("artist_id", sa.String(128), nullable=False),
        sa.Column("listener_id", sa.String(128), nullable=False),
        sa.Column("device_id", sa.String(128), nullable=False),
        sa.Column("event_timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_ms", sa.BigInteger(), nullable=False),
        sa.Column("track_duration_ms", sa.BigInteger(), nullable=True),
        sa.Column("subscription_tier", sa.String(16), nullable=False),
        sa.Column("source_ip", sa.String(45), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("fraud_score", sa.Float(), nullable=False),
        sa.Column(
            "fraud_flags",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column("verdict", sa.String(16), nullable=False),
        sa.Column("late", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column(
            "recorded_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint("duration_ms >= 0", name="ck_stream_event_duration_non_negative"),
        sa.CheckConstraint(
            "fraud_score >= 0 AND fraud_score <= 1", name="ck_stream_event_score_range"
        ),
        sa.CheckConstraint(
            "verdict IN ('clean', 'suspicious', 'rejected')", name="ck_stream_event_verdict"
        ),
        sa.PrimaryKeyConstraint("event_id"),
    )
    op.create_index(
        "ix_stream_event_artist_time", "stream_event", ["artist_id", "event_timestamp"]
    )
    op.create_index("ix_stream_event_window", "stream_event", ["window_start", "late"])
    op.create_index(
        op.f("ix_stream_event_listener_id"), "stream_event", ["listener_id"], unique=False
    )

    # Sealed windows and their bucket snapshots
    op.create_table(
        "sealed_window",
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("window_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("bucket_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("sealed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("window_start"),
    )
    op.create_table(
        "aggregate_bucket",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("artist_id", sa.String(128), nullable=False),
        sa.Column("track_id", sa.String(128), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("window_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_play_count", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("flagged_play_count", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("total_duration_ms", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("sealed_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "valid_play_count >= 0 AND flagged_play_count >= 0 AND total_duration_ms >= 0",
            name="ck_aggregate_bucket_non_negative",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "artist_id", "track_id", "window_start", name="uq_aggregate_bucket_key"
        ),
    )
    op.create_index(
        "ix_aggregate_bucket_artist_window", "aggregate_bucket", ["artist_id", "window_start"]
    )
    op.create_index("ix_aggregate_bucket_window", "aggregate_bucket", ["window_start"])

    # Artist rate cards
    op.create_table(
        "artist_tier_profile",
        sa.Column("artist_id", sa.String(128), nullable=False),
        sa.Column("tier", sa.String(16), nullable=False),
        sa.Column("base_rate_per_play", sa.Numeric(20, 8), nullable=False),
        sa.Column("tier_multiplier", sa.Numeric(8, 4), nullable=False),
        sa.Column("payout_ceiling", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "tier IN ('standard', 'verified', 'exclusive')", name="ck_artist_tier_profile_tier"
        ),
        sa.CheckConstraint("base_rate_per_play >= 0", name="ck_artist_tier_profile_rate"),
        sa.CheckConstraint("tier_multiplier > 0", name="ck_artist_tier_profile_multiplier"),
        sa.PrimaryKeyConstraint("artist_id"),
    )

    # Royalty statement ledger
    op.create_table(
        "royalty_statement",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("artist_id", sa.String(128), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sequence", sa.Integer(), server_default="0", nullable=False),
        sa.Column("corrects_statement_id", sa.String(), nullable=True),
        sa.Column("gross_amount", sa.BigInteger(), nullable=False),
        sa.Column("fraud_deduction", sa.BigInteger(), nullable=False),
        sa.Column("net_amount", sa.BigInteger(), nullable=False),
        sa.Column("offset_amount", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("valid_play_count", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("flagged_play_count", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("bucket_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column(
            "requires_manual_review", sa.Boolean(), server_default=sa.false(), nullable=False
        ),
        sa.Column("review_reason", sa.Text(), nullable=True),
        sa.Column(
            "calculation_metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("net_amount >= 0", name="ck_royalty_statement_net_non_negative"),
        sa.CheckConstraint(
            "gross_amount >= 0 AND fraud_deduction >= 0",
            name="ck_royalty_statement_amounts_non_negative",
        ),
        sa.CheckConstraint("period_start < period_end", name="ck_royalty_statement_period"),
        sa.CheckConstraint(
            "(sequence = 0 AND corrects_statement_id IS NULL) "
            "OR (sequence > 0 AND corrects_statement_id IS NOT NULL)",
            name="ck_royalty_statement_correction_ref",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'calculated', 'approved', 'paid', 'failed', 'disputed')",
            name="ck_royalty_statement_status",
        ),
        sa.ForeignKeyConstraint(
            ["corrects_statement_id"], ["royalty_statement.id"], ondelete="RESTRICT"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "artist_id",
            "period_start",
            "period_end",
            "sequence",
            name="uq_royalty_statement_artist_period_sequence",
        ),
    )
    op.create_index(
        op.f("ix_royalty_statement_status"), "royalty_statement", ["status"], unique=False
    )
    op.create_index(
        "ix_royalty_statement_period", "royalty_statement", ["period_start", "period_end"]
    )
    op.create_index(
        "ix_royalty_statement_artist", "royalty_statement", ["artist_id", "period_start"]
    )

    op.create_table(
        "statement_transition",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("statement_id", sa.String(), nullable=False),
        sa.Column("from_status", sa.String(16), nullable=True),
        sa.Column("to_status", sa.String(16), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column(
            "occurred_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("clock_timestamp()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["statement_id"], ["royalty_statement.id"], ondelete="RESTRICT"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_statement_transition_statement",
        "statement_transition",
        ["statement_id", "occurred_at"],
    )

    # Payout handoff
    op.create_table(
        "payment_status",
        sa.Column("statement_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reference_id", sa.String(255), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'paid', 'failed')",
            name="ck_payment_status_status",
        ),
        sa.CheckConstraint("attempts >= 0", name="ck_payment_status_attempts"),
        sa.ForeignKeyConstraint(
            ["statement_id"], ["royalty_statement.id"], ondelete="RESTRICT"
        ),
        sa.PrimaryKeyConstraint("statement_id"),
    )
    op.create_index(
        op.f("ix_payment_status_status"), "payment_status", ["status"], unique=False
    )

    # Append-only guards at the database level
    op.execute(
        """
        CREATE OR REPLACE FUNCTION prevent_append_only_mutation()
        RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION '% rows are immutable', TG_TABLE_NAME;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    for table in ("stream_event", "aggregate_bucket", "sealed_window", "statement_transition"):
        op.execute(
            f"""
            CREATE TRIGGER {table}_append_only
            BEFORE UPDATE OR DELETE ON {table}
            FOR EACH ROW EXECUTE FUNCTION prevent_append_only_mutation();
            """
        )


def downgrade() -> None:
    """Drop royalty pipeline schema."""
    for table in ("stream_event", "aggregate_bucket", "sealed_window", "statement_transition"):
        op.execute(f"DROP TRIGGER IF EXISTS {table}_append_only ON {table}")
    op.execute("DROP FUNCTION IF EXISTS prevent_append_only_mutation()")
    op.drop_index(op.f("ix_payment_status_status"), table_name="payment_status")
    op.drop_table("payment_status")
    op.drop_index("ix_statement_transition_statement", table_name="statement_transition")
    op.drop_table("statement_transition")
    op.drop_index("ix_royalty_statement_artist", table_name="royalty_statement")
    op.drop_index("ix_royalty_statement_period", table_name="royalty_statement")
    op.drop_index(op.f("ix_royalty_statement_status"), table_name="royalty_statement")
    op.drop_table("royalty_statement")
    op.drop_table("artist_tier_profile")
    op.drop_index("ix_aggregate_bucket_window", table_name="aggregate_bucket")
    op.drop_index("ix_aggregate_bucket_artist_window", table_name="aggregate_bucket")
    op.drop_table("aggregate_bucket")
    op.drop_table("sealed_window")
    op.drop_index(op.f("ix_stream_event_listener_id"), table_name="stream_event")
    op.drop_index("ix_stream_event_window", table_name="stream_event")
    op.drop_index("ix_stream_event_artist_time", table_name="stream_event")
    op.drop_table("stream_event")
