"""Statement queries, manual approval and corrections."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from royalty_pipeline.application.dtos.royalty import (
    StatementAmounts,
    StatementCreate,
    StatementResult,
    StatementTransitionResult,
)
from royalty_pipeline.application.interfaces.repositories import IUnitOfWork
from royalty_pipeline.application.services.royalty_algorithms import compute_net
from royalty_pipeline.domain.enums import RoyaltyStatus
from royalty_pipeline.domain.exceptions import (
    InvalidStatusTransitionError,
    ResourceNotFoundException,
    ValidationError,
)
from royalty_pipeline.shared.telemetry.logging import get_logger

logger = get_logger(__name__)


class StatementService:
    """Read and administer royalty statements.

    Money columns are never updated; a correction is a new statement whose
    offset_amount settles the difference against what was already paid.
    """

    def __init__(self, uow_factory: Callable[[], IUnitOfWork]) -> None:
        self.uow_factory = uow_factory

    async def get_statement(self, statement_id: str) -> StatementResult:
        async with self.uow_factory() as uow:
            statement = await uow.statements.get_by_id(statement_id)
        if statement is None:
            raise ResourceNotFoundException("royalty_statement", statement_id)
        return statement

    async def list_statements(
        self,
        *,
        artist_id: str | None = None,
        status: RoyaltyStatus | None = None,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
        requires_manual_review: bool | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[StatementResult]:
        async with self.uow_factory() as uow:
            return await uow.statements.list_statements(
                artist_id=artist_id,
                status=status,
                period_start=period_start,
                period_end=period_end,
                requires_manual_review=requires_manual_review,
                skip=skip,
                limit=limit,
            )

    async def list_transitions(self, statement_id: str) -> list[StatementTransitionResult]:
        async with self.uow_factory() as uow:
            if await uow.statements.get_by_id(statement_id) is None:
                raise ResourceNotFoundException("royalty_statement", statement_id)
            return await uow.statements.list_transitions(statement_id)

    async def approve_statement(
        self, statement_id: str, reason: str = "manual approval"
    ) -> StatementResult:
        """Sign off a CALCULATED statement (CALCULATED -> APPROVED)."""
        async with self.uow_factory() as uow:
            statement = await uow.statements.get_by_id(statement_id)
            if statement is None:
                raise ResourceNotFoundException("royalty_statement", statement_id)
            if statement.status != RoyaltyStatus.CALCULATED:
                raise InvalidStatusTransitionError(
                    "royalty_statement",
                    statement_id,
                    statement.status.value,
                    RoyaltyStatus.APPROVED.value,
                )
            approved = await uow.statements.transition(
                statement_id,
                RoyaltyStatus.APPROVED,
                reason=reason,
                requires_manual_review=False,
            )
        logger.info(
            "Statement %s approved manually (net=%d): %s",
            statement_id,
            approved.net_amount,
            reason,
        )
        return approved

    async def issue_correction(
        self,
        statement_id: str,
        gross_amount: int,
        fraud_deduction: int,
        reason: str,
    ) -> StatementResult:
        """Append an offsetting statement for a paid original.

        The original moves PAID -> DISPUTED (a DISPUTED original may be
        corrected again). offset_amount is the corrected net minus what the
        original and earlier corrections already settled.
        """
        if gross_amount < 0 or fraud_deduction < 0:
            raise ValidationError("Corrected amounts cannot be negative", field="gross_amount")
        if not reason or not reason.strip():
            raise ValidationError("A correction reason is required", field="reason")

        async with self.uow_factory() as uow:
            original = await uow.statements.get_by_id(statement_id)
            if original is None:
                raise ResourceNotFoundException("royalty_statement", statement_id)
            if original.is_correction:
                raise ValidationError(
                    "Corrections reference the original statement", field="statement_id"
                )
            if original.status == RoyaltyStatus.PAID:
                original = await uow.statements.transition(
                    original.id, RoyaltyStatus.DISPUTED, reason=reason
                )
            elif original.status != RoyaltyStatus.DISPUTED:
                raise InvalidStatusTransitionError(
                    "royalty_statement",
                    original.id,
                    original.status.value,
                    RoyaltyStatus.DISPUTED.value,
                )

            earlier = await uow.statements.list_statements(
                artist_id=original.artist_id,
                period_start=original.period_start,
                period_end=original.period_end,
                limit=1000,
            )
            settled = original.net_amount + sum(
                s.offset_amount for s in earlier if s.corrects_statement_id == original.id
            )
            net = int(compute_net(gross_amount, fraud_deduction))
            sequence = (
                await uow.statements.latest_sequence(
                    original.artist_id, original.period_start, original.period_end
                )
                + 1
            )
            correction = await uow.statements.create(
                StatementCreate(
                    artist_id=original.artist_id,
                    period_start=original.period_start,
                    period_end=original.period_end,
                    currency=original.currency,
                    amounts=StatementAmounts(
                        gross_amount=gross_amount,
                        fraud_deduction=fraud_deduction,
                        net_amount=net,
                        valid_play_count=original.valid_play_count,
                        flagged_play_count=original.flagged_play_count,
                        bucket_count=original.bucket_count,
                        exact_gross=Decimal(gross_amount),
                        exact_deduction=Decimal(fraud_deduction),
                    ),
                    sequence=sequence,
                    corrects_statement_id=original.id,
                    offset_amount=net - settled,
                    requires_manual_review=True,
                    review_reason=reason,
                    calculation_metadata={
                        "correction_of": original.id,
                        "previous_settled_net": settled,
                        "reason": reason,
                    },
                )
            )
            correction = await uow.statements.transition(
                correction.id, RoyaltyStatus.CALCULATED, reason=reason
            )
        logger.warning(
            "Correction %s (sequence %d) issued for statement %s: net %d -> %d, offset %d",
            correction.id,
            sequence,
            original.id,
            settled,
            net,
            correction.offset_amount,
        )
        return correction
