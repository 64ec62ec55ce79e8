"""Payout distribution and processor callbacks."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from royalty_pipeline.application.dtos.royalty import (
    DistributionReport,
    PaymentStatusResult,
    StatementResult,
)
from royalty_pipeline.application.interfaces.repositories import IUnitOfWork
from royalty_pipeline.application.interfaces.services import IPayoutGateway
from royalty_pipeline.domain.enums import PaymentState, RoyaltyStatus
from royalty_pipeline.domain.exceptions import (
    PaymentSubmissionError,
    ResourceNotFoundException,
)
from royalty_pipeline.shared.telemetry.logging import get_logger
from royalty_pipeline.shared.telemetry.metrics import PAYOUT_SUBMISSIONS_TOTAL
from royalty_pipeline.shared.telemetry.tracing import add_span_attributes, traced
from royalty_pipeline.shared.utils.datetime import utc_now

logger = get_logger(__name__)


class PayoutDistributor:
    """Hands APPROVED statements to the payout processor and applies its callbacks."""

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        gateway: IPayoutGateway,
        *,
        max_attempts: int = 3,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.uow_factory = uow_factory
        self.gateway = gateway
        self.max_attempts = max(1, max_attempts)
        self._clock = clock

    @traced("payouts.distribute")
    async def distribute(self, limit: int = 100) -> DistributionReport:
        """Submit approved statements and retry failed payouts that have attempts left."""
        to_submit: list[str] = []
        exhausted: list[str] = []
        async with self.uow_factory() as uow:
            approved = await uow.statements.list_statements(
                status=RoyaltyStatus.APPROVED, limit=limit
            )
            for statement in approved:
                payment = await uow.payments.get(statement.id)
                if payment is None or payment.status == PaymentState.PENDING:
                    to_submit.append(statement.id)
                elif payment.status == PaymentState.FAILED:
                    if payment.attempts >= self.max_attempts:
                        exhausted.append(statement.id)
                    else:
                        to_submit.append(statement.id)
            retryable = await uow.payments.list_by_status(
                PaymentState.FAILED, limit=limit, attempts_below=self.max_attempts
            )
            for payment in retryable:
                if payment.statement_id not in to_submit:
                    to_submit.append(payment.statement_id)
            spent = await uow.payments.list_by_status(
                PaymentState.FAILED, limit=limit, attempts_at_least=self.max_attempts
            )
            for payment in spent:
                if payment.statement_id not in exhausted:
                    exhausted.append(payment.statement_id)

        submitted: list[str] = []
        failed: list[str] = []
        for statement_id in to_submit:
            try:
                await self.submit(statement_id)
            except PaymentSubmissionError as e:
                logger.warning("Payout for statement %s failed: %s", statement_id, e.message)
                failed.append(statement_id)
            else:
                submitted.append(statement_id)

        if exhausted:
            logger.error(
                "Payouts exhausted %d attempts and need manual resolution: %s",
                self.max_attempts,
                ", ".join(exhausted),
            )
        add_span_attributes(
            submitted=len(submitted), failed=len(failed), exhausted=len(exhausted)
        )
        return DistributionReport(
            submitted=tuple(submitted), failed=tuple(failed), exhausted=tuple(exhausted)
        )

    async def submit(self, statement_id: str) -> PaymentStatusResult:
        """Submit one statement. Raises PaymentSubmissionError when the processor refuses."""
        async with self.uow_factory() as uow:
            statement = await uow.statements.get_by_id(statement_id)
            if statement is None:
                raise ResourceNotFoundException("royalty_statement", statement_id)
            if statement.status == RoyaltyStatus.FAILED:
                statement = await uow.statements.transition(
                    statement_id, RoyaltyStatus.APPROVED, reason="payout retry"
                )
            payment = await uow.payments.get(statement_id)
            if payment is None:
                payment = await uow.payments.create(statement_id)

        attempted_at = self._clock()
        try:
            submission = await self.gateway.submit_payout(statement)
            if not submission.accepted:
                raise PaymentSubmissionError(
                    statement_id, submission.reason or "rejected by payout processor"
                )
        except PaymentSubmissionError as e:
            PAYOUT_SUBMISSIONS_TOTAL.labels(result="failed").inc()
            await self._record_failure(statement, e.details.get("reason", e.message), attempted_at)
            raise

        PAYOUT_SUBMISSIONS_TOTAL.labels(result="accepted").inc()
        async with self.uow_factory() as uow:
            result = await uow.payments.update_status(
                statement_id,
                PaymentState.PROCESSING,
                count_attempt=True,
                attempted_at=attempted_at,
                reference_id=submission.reference_id,
            )
        logger.info(
            "Payout submitted for statement %s (amount=%d %s, reference=%s)",
            statement_id,
            statement.payable_amount,
            statement.currency,
            submission.reference_id,
        )
        return result

    async def _record_failure(
        self, statement: StatementResult, reason: str, attempted_at: datetime
    ) -> None:
        async with self.uow_factory() as uow:
            await uow.payments.update_status(
                statement.id,
                PaymentState.FAILED,
                count_attempt=True,
                attempted_at=attempted_at,
                last_error=reason,
            )
            await uow.statements.transition(
                statement.id, RoyaltyStatus.FAILED, reason=f"payout failed: {reason}"
            )

    async def apply_payout_callback(
        self,
        statement_id: str,
        reference_id: str | None,
        succeeded: bool,
        failure_reason: str | None = None,
    ) -> PaymentStatusResult:
        """Apply the processor's final answer for a PROCESSING payout.

        A repeated success callback for a PAID payout is a no-op. A callback
        naming a reference other than the current submission's is stale and
        leaves the payment unchanged.
        """
        async with self.uow_factory() as uow:
            payment = await uow.payments.get(statement_id)
            if payment is None:
                raise ResourceNotFoundException("payment_status", statement_id)
            if reference_id and payment.reference_id and reference_id != payment.reference_id:
                logger.warning(
                    "Ignoring stale payout callback for statement %s "
                    "(reference=%s, current=%s)",
                    statement_id,
                    reference_id,
                    payment.reference_id,
                )
                return payment
            if succeeded and payment.status == PaymentState.PAID:
                return payment
            if succeeded:
                result = await uow.payments.update_status(
                    statement_id, PaymentState.PAID, reference_id=reference_id
                )
                await uow.statements.transition(
                    statement_id,
                    RoyaltyStatus.PAID,
                    reason="payout confirmed by processor",
                    finalized_at=self._clock(),
                )
            else:
                reason = failure_reason or "payout failed at processor"
                result = await uow.payments.update_status(
                    statement_id, PaymentState.FAILED, reference_id=reference_id, last_error=reason
                )
                await uow.statements.transition(
                    statement_id, RoyaltyStatus.FAILED, reason=f"payout failed: {reason}"
                )
        logger.info(
            "Payout callback for statement %s: %s (reference=%s)",
            statement_id,
            "paid" if succeeded else "failed",
            reference_id,
        )
        return result
