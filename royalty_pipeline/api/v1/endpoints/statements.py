"""Royalty statement endpoints: list, detail, history, approval, corrections."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from royalty_pipeline.api.v1.dependencies import get_statement_service
from royalty_pipeline.application.use_cases import StatementService
from royalty_pipeline.core.limiter import limit_writes
from royalty_pipeline.domain.enums import RoyaltyStatus
from royalty_pipeline.schemas.common import aware_or_none
from royalty_pipeline.schemas.royalty import (
    ApproveStatementRequest,
    CorrectionRequest,
    StatementResponse,
    StatementTransitionResponse,
)

router = APIRouter()


@router.get("", response_model=list[StatementResponse])
async def list_statements(
    svc: Annotated[StatementService, Depends(get_statement_service)],
    artist_id: str | None = None,
    status: RoyaltyStatus | None = None,
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    requires_manual_review: bool | None = None,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
):
    """Statements, newest first. Filter requires_manual_review=true for the review queue."""
    statements = await svc.list_statements(
        artist_id=artist_id,
        status=status,
        period_start=aware_or_none(period_start),
        period_end=aware_or_none(period_end),
        requires_manual_review=requires_manual_review,
        skip=skip,
        limit=limit,
    )
    return [StatementResponse.model_validate(s) for s in statements]


@router.get("/{statement_id}", response_model=StatementResponse)
async def get_statement(
    statement_id: str,
    svc: Annotated[StatementService, Depends(get_statement_service)],
):
    return StatementResponse.model_validate(await svc.get_statement(statement_id))


@router.get("/{statement_id}/transitions", response_model=list[StatementTransitionResponse])
async def list_statement_transitions(
    statement_id: str,
    svc: Annotated[StatementService, Depends(get_statement_service)],
):
    """Status history, oldest first."""
    transitions = await svc.list_transitions(statement_id)
    return [StatementTransitionResponse.model_validate(t) for t in transitions]


@router.post("/{statement_id}/approve", response_model=StatementResponse)
@limit_writes
async def approve_statement(
    request: Request,
    statement_id: str,
    svc: Annotated[StatementService, Depends(get_statement_service)],
    body: ApproveStatementRequest | None = None,
):
    """Sign off a statement held for manual review (CALCULATED -> APPROVED)."""
    reason = body.reason if body else "manual approval"
    return StatementResponse.model_validate(await svc.approve_statement(statement_id, reason))


@router.post("/{statement_id}/corrections", response_model=StatementResponse, status_code=201)
@limit_writes
async def issue_correction(
    request: Request,
    statement_id: str,
    body: CorrectionRequest,
    svc: Annotated[StatementService, Depends(get_statement_service)],
):
    """Dispute a paid statement and append an offsetting correction (held for review)."""
    correction = await svc.issue_correction(
        statement_id,
        gross_amount=body.gross_amount,
        fraud_deduction=body.fraud_deduction,
        reason=body.reason,
    )
    return StatementResponse.model_validate(correction)
