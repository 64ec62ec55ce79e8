"""Development payout gateway: accepts every payout and only logs it."""

import logging

from royalty_pipeline.application.dtos.royalty import PayoutSubmission, StatementResult
from royalty_pipeline.shared.utils.generators import generate_cuid

logger = logging.getLogger(__name__)


class LogOnlyPayoutGateway:
    async def submit_payout(self, statement: StatementResult) -> PayoutSubmission:
        reference_id = f"log_{generate_cuid()}"
        logger.info(
            "Payout (log only) for statement %s artist %s: %d %s -> %s",
            statement.id,
            statement.artist_id,
            statement.payable_amount,
            statement.currency,
            reference_id,
        )
        return PayoutSubmission(accepted=True, reference_id=reference_id)
