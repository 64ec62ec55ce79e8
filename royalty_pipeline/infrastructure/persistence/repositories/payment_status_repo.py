"""Payment status repository (payout handoff state per statement)."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from royalty_pipeline.application.dtos.royalty import PaymentStatusResult
from royalty_pipeline.domain.enums import PaymentState, can_transition_payment
from royalty_pipeline.domain.exceptions import (
    InvalidStatusTransitionError,
    ResourceNotFoundException,
    ValidationError,
)
from royalty_pipeline.infrastructure.persistence.models.royalty_statement import PaymentStatus
from royalty_pipeline.infrastructure.persistence.repositories.base import BaseRepository


def _payment_to_result(row: PaymentStatus) -> PaymentStatusResult:
    return PaymentStatusResult(
        statement_id=row.statement_id,
        status=PaymentState(row.status),
        attempts=row.attempts,
        last_attempt_at=row.last_attempt_at,
        reference_id=row.reference_id,
        last_error=row.last_error,
    )


class PaymentStatusRepository(BaseRepository[PaymentStatus]):
    def __init__(self, db: AsyncSession) -> None:
        super().__init__(db, PaymentStatus)

    async def get(self, statement_id: str) -> PaymentStatusResult | None:
        row = await self.get_by_pk(statement_id)
        return _payment_to_result(row) if row else None

    async def create(self, statement_id: str) -> PaymentStatusResult:  # type: ignore[override]
        try:
            async with self.db.begin_nested():
                row = await super().create(
                    PaymentStatus(
                        statement_id=statement_id,
                        status=PaymentState.PENDING.value,
                        attempts=0,
                    )
                )
        except IntegrityError:
            raise ValidationError(
                f"Payment status for statement {statement_id} already exists",
                field="statement_id",
            )
        return _payment_to_result(row)

    async def update_status(
        self,
        statement_id: str,
        target: PaymentState,
        *,
        count_attempt: bool = False,
        attempted_at: datetime | None = None,
        reference_id: str | None = None,
        last_error: str | None = None,
    ) -> PaymentStatusResult:
        result = await self.db.execute(
            select(PaymentStatus)
            .where(PaymentStatus.statement_id == statement_id)
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise ResourceNotFoundException("payment_status", statement_id)
        current = PaymentState(row.status)
        if not can_transition_payment(current, target):
            raise InvalidStatusTransitionError(
                "payment_status", statement_id, current.value, target.value
            )
        row.status = target.value
        if count_attempt:
            row.attempts += 1
        if attempted_at is not None:
            row.last_attempt_at = attempted_at
        if reference_id is not None:
            row.reference_id = reference_id
        row.last_error = last_error
        await self.db.flush()
        await self.db.refresh(row)
        return _payment_to_result(row)

    async def list_by_status(
        self,
        status: PaymentState,
        limit: int = 100,
        *,
        attempts_below: int | None = None,
        attempts_at_least: int | None = None,
    ) -> list[PaymentStatusResult]:
        query = select(PaymentStatus).where(PaymentStatus.status == status.value)
        if attempts_below is not None:
            query = query.where(PaymentStatus.attempts < attempts_below)
        if attempts_at_least is not None:
            query = query.where(PaymentStatus.attempts >= attempts_at_least)
        result = await self.db.execute(
            query.order_by(PaymentStatus.last_attempt_at.asc().nulls_first(), PaymentStatus.statement_id)
            .limit(limit)
        )
        return [_payment_to_result(row) for row in result.scalars().all()]
