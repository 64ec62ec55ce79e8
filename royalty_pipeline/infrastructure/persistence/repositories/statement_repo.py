"""Royalty statement repository.

Statements are append-only in their amounts; only status, review and
finalization fields change, always through transition(), which enforces
STATEMENT_TRANSITIONS and writes a statement_transition row.
"""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from royalty_pipeline.application.dtos.royalty import (
    StatementCreate,
    StatementResult,
    StatementTransitionResult,
)
from royalty_pipeline.domain.enums import RoyaltyStatus, can_transition_statement
from royalty_pipeline.domain.exceptions import (
    InvalidStatusTransitionError,
    ResourceNotFoundException,
    StatementAlreadyExistsError,
)
from royalty_pipeline.infrastructure.persistence.models.royalty_statement import (
    RoyaltyStatement,
    StatementTransition,
)
from royalty_pipeline.infrastructure.persistence.repositories.base import BaseRepository
from royalty_pipeline.shared.telemetry.logging import get_logger

logger = get_logger(__name__)


def _statement_to_result(row: RoyaltyStatement) -> StatementResult:
    """Map ORM RoyaltyStatement to the application StatementResult."""
    return StatementResult(
        id=row.id,
        artist_id=row.artist_id,
        period_start=row.period_start,
        period_end=row.period_end,
        sequence=row.sequence,
        corrects_statement_id=row.corrects_statement_id,
        gross_amount=row.gross_amount,
        fraud_deduction=row.fraud_deduction,
        net_amount=row.net_amount,
        offset_amount=row.offset_amount,
        currency=row.currency,
        valid_play_count=row.valid_play_count,
        flagged_play_count=row.flagged_play_count,
        bucket_count=row.bucket_count,
        status=RoyaltyStatus(row.status),
        requires_manual_review=row.requires_manual_review,
        review_reason=row.review_reason,
        calculation_metadata=dict(row.calculation_metadata or {}),
        created_at=row.created_at,
        finalized_at=row.finalized_at,
    )


def _transition_to_result(row: StatementTransition) -> StatementTransitionResult:
    return StatementTransitionResult(
        statement_id=row.statement_id,
        from_status=RoyaltyStatus(row.from_status) if row.from_status else None,
        to_status=RoyaltyStatus(row.to_status),
        reason=row.reason,
        occurred_at=row.occurred_at,
    )


class StatementRepository(BaseRepository[RoyaltyStatement]):
    def __init__(self, db: AsyncSession) -> None:
        super().__init__(db, RoyaltyStatement)

    async def _on_after_create(self, obj: RoyaltyStatement) -> None:
        """Record the initial status in the history table."""
        self.db.add(
            StatementTransition(
                statement_id=obj.id,
                from_status=None,
                to_status=obj.status,
                reason="created",
            )
        )
        await self.db.flush()

    async def get_by_id(self, statement_id: str) -> StatementResult | None:
        row = await self.get_by_pk(statement_id)
        return _statement_to_result(row) if row else None

    async def get_original(
        self, artist_id: str, period_start: datetime, period_end: datetime
    ) -> StatementResult | None:
        result = await self.db.execute(
            select(RoyaltyStatement).where(
                RoyaltyStatement.artist_id == artist_id,
                RoyaltyStatement.period_start == period_start,
                RoyaltyStatement.period_end == period_end,
                RoyaltyStatement.sequence == 0,
            )
        )
        row = result.scalar_one_or_none()
        return _statement_to_result(row) if row else None

    async def latest_sequence(
        self, artist_id: str, period_start: datetime, period_end: datetime
    ) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.max(RoyaltyStatement.sequence), -1)).where(
                RoyaltyStatement.artist_id == artist_id,
                RoyaltyStatement.period_start == period_start,
                RoyaltyStatement.period_end == period_end,
            )
        )
        return int(result.scalar_one())

    async def create(self, data: StatementCreate) -> StatementResult:  # type: ignore[override]
        amounts = data.amounts
        row = RoyaltyStatement(
            artist_id=data.artist_id,
            period_start=data.period_start,
            period_end=data.period_end,
            sequence=data.sequence,
            corrects_statement_id=data.corrects_statement_id,
            gross_amount=amounts.gross_amount,
            fraud_deduction=amounts.fraud_deduction,
            net_amount=amounts.net_amount,
            offset_amount=data.offset_amount,
            currency=data.currency,
            valid_play_count=amounts.valid_play_count,
            flagged_play_count=amounts.flagged_play_count,
            bucket_count=amounts.bucket_count,
            status=data.status.value,
            requires_manual_review=data.requires_manual_review,
            review_reason=data.review_reason,
            calculation_metadata=data.calculation_metadata,
        )
        try:
            async with self.db.begin_nested():
                created = await super().create(row)
        except IntegrityError:
            raise StatementAlreadyExistsError(
                data.artist_id,
                data.period_start.isoformat(),
                data.period_end.isoformat(),
                data.sequence,
            )
        return _statement_to_result(created)

    async def transition(
        self,
        statement_id: str,
        target: RoyaltyStatus,
        reason: str | None = None,
        *,
        requires_manual_review: bool | None = None,
        finalized_at: datetime | None = None,
    ) -> StatementResult:
        result = await self.db.execute(
            select(RoyaltyStatement)
            .where(RoyaltyStatement.id == statement_id)
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise ResourceNotFoundException("royalty_statement", statement_id)
        current = RoyaltyStatus(row.status)
        if not can_transition_statement(current, target):
            raise InvalidStatusTransitionError(
                "royalty_statement", statement_id, current.value, target.value
            )
        row.status = target.value
        if requires_manual_review is not None:
            row.requires_manual_review = requires_manual_review
        if finalized_at is not None:
            row.finalized_at = finalized_at
        self.db.add(
            StatementTransition(
                statement_id=statement_id,
                from_status=current.value,
                to_status=target.value,
                reason=reason,
            )
        )
        await self.db.flush()
        await self.db.refresh(row)
        logger.debug("Statement %s: %s -> %s", statement_id, current.value, target.value)
        return _statement_to_result(row)

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
        query = select(RoyaltyStatement)
        if artist_id is not None:
            query = query.where(RoyaltyStatement.artist_id == artist_id)
        if status is not None:
            query = query.where(RoyaltyStatement.status == status.value)
        if period_start is not None:
            query = query.where(RoyaltyStatement.period_start >= period_start)
        if period_end is not None:
            query = query.where(RoyaltyStatement.period_end <= period_end)
        if requires_manual_review is not None:
            query = query.where(
                RoyaltyStatement.requires_manual_review.is_(requires_manual_review)
            )
        result = await self.db.execute(
            query.order_by(RoyaltyStatement.created_at.desc(), RoyaltyStatement.id)
            .offset(skip)
            .limit(limit)
        )
        return [_statement_to_result(row) for row in result.scalars().all()]

    async def list_transitions(self, statement_id: str) -> list[StatementTransitionResult]:
        result = await self.db.execute(
            select(StatementTransition)
            .where(StatementTransition.statement_id == statement_id)
            .order_by(StatementTransition.occurred_at, StatementTransition.id)
        )
        return [_transition_to_result(row) for row in result.scalars().all()]
