"""Royalty run, statement and payout schemas. Amounts are integer minor units."""

from datetime import datetime
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator

from royalty_pipeline.application.dtos.royalty import ArtistRunStatus
from royalty_pipeline.domain.enums import PaymentState, RoyaltyStatus
from royalty_pipeline.schemas.common import ensure_aware_datetime


class RoyaltyRunRequest(BaseModel):
    """Settlement period; both bounds must be aligned to the aggregation window."""

    period_start: AwareDatetime
    period_end: AwareDatetime

    @field_validator("period_start", "period_end", mode="before")
    @classmethod
    def bounds_aware(cls, v: Any) -> datetime:
        return ensure_aware_datetime(v)


class ArtistRunOutcomeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    artist_id: str
    status: ArtistRunStatus
    statement_id: str | None = None
    net_amount: int | None = None
    error: str | None = None


class RunReportResponse(BaseModel):
    period_start: AwareDatetime
    period_end: AwareDatetime
    windows_sealed: int
    created: int
    approved: int
    manual_review: int
    skipped: int
    failed: int
    total_net_amount: int
    cancelled: bool
    outcomes: list[ArtistRunOutcomeResponse]


class StatementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    artist_id: str
    period_start: AwareDatetime
    period_end: AwareDatetime
    sequence: int
    corrects_statement_id: str | None = None
    gross_amount: int
    fraud_deduction: int
    net_amount: int
    offset_amount: int
    payable_amount: int
    currency: str
    valid_play_count: int
    flagged_play_count: int
    bucket_count: int
    status: RoyaltyStatus
    requires_manual_review: bool
    review_reason: str | None = None
    calculation_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    finalized_at: datetime | None = None


class StatementTransitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    statement_id: str
    from_status: RoyaltyStatus | None = None
    to_status: RoyaltyStatus
    reason: str | None = None
    occurred_at: datetime


class ApproveStatementRequest(BaseModel):
    reason: str = Field(default="manual approval", min_length=1, max_length=500)


class CorrectionRequest(BaseModel):
    """Corrected totals for a paid statement (minor units)."""

    gross_amount: int = Field(..., ge=0)
    fraud_deduction: int = Field(..., ge=0)
    reason: str = Field(..., min_length=1, max_length=500)


class PaymentStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    statement_id: str
    status: PaymentState
    attempts: int
    last_attempt_at: datetime | None = None
    reference_id: str | None = None
    last_error: str | None = None


class DistributionResponse(BaseModel):
    submitted: list[str]
    failed: list[str]
    exhausted: list[str]


class PayoutWebhookRequest(BaseModel):
    """Callback from the payout processor."""

    statement_id: str = Field(..., min_length=1)
    reference_id: str = Field(..., min_length=1)
    succeeded: bool
    failure_reason: str | None = Field(default=None, max_length=1000)
