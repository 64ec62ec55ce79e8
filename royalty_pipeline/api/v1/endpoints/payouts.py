"""Payout distribution and the payout processor callback."""

import hashlib
import hmac
import json
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError as PydanticValidationError

from royalty_pipeline.api.v1.dependencies import get_payout_distributor
from royalty_pipeline.application.use_cases import PayoutDistributor
from royalty_pipeline.core.config import get_settings
from royalty_pipeline.core.constants import PAYOUT_WEBHOOK_SIGNATURE_HEADER
from royalty_pipeline.core.exception_handlers import jsonable_errors
from royalty_pipeline.core.limiter import limit_admin_actions, limit_writes
from royalty_pipeline.schemas.royalty import (
    DistributionResponse,
    PaymentStatusResponse,
    PayoutWebhookRequest,
)

router = APIRouter()


def verify_webhook_signature(body: bytes, signature_header: str | None, secret: str) -> bool:
    """Return True if the signature header matches sha256=HMAC-SHA256(secret, body)."""
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    expected = hmac.HMAC(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature_header[7:].strip(), expected)


@router.post("/distribute", response_model=DistributionResponse)
@limit_admin_actions
async def distribute_payouts(
    request: Request,
    distributor: Annotated[PayoutDistributor, Depends(get_payout_distributor)],
    limit: int = 100,
):
    """Submit approved statements and retry failed payouts within the attempt budget."""
    report = await distributor.distribute(limit=limit)
    return DistributionResponse(
        submitted=list(report.submitted),
        failed=list(report.failed),
        exhausted=list(report.exhausted),
    )


@router.post("/webhook", response_model=PaymentStatusResponse)
@limit_writes
async def payout_webhook(
    request: Request,
    distributor: Annotated[PayoutDistributor, Depends(get_payout_distributor)],
):
    """Processor callback.

    PAYOUT_WEBHOOK_SECRET must be set, and callers must send
    X-Webhook-Signature-256: sha256=<hmac_sha256(secret, body)>.
    """
    body = await request.body()
    settings = get_settings()
    if not settings.payout_webhook_secret:
        raise HTTPException(
            status_code=503,
            detail="Payout webhook is not configured (PAYOUT_WEBHOOK_SECRET is not set).",
        )
    signature = request.headers.get(PAYOUT_WEBHOOK_SIGNATURE_HEADER)
    if not verify_webhook_signature(
        body, signature, settings.payout_webhook_secret.get_secret_value()
    ):
        raise HTTPException(status_code=401, detail="Invalid or missing webhook signature")
    try:
        callback = PayoutWebhookRequest.model_validate(json.loads(body))
    except (ValueError, PydanticValidationError) as e:
        details = jsonable_errors(e.errors()) if isinstance(e, PydanticValidationError) else str(e)
        raise HTTPException(status_code=422, detail=details)
    payment = await distributor.apply_payout_callback(
        callback.statement_id,
        callback.reference_id,
        callback.succeeded,
        callback.failure_reason,
    )
    return PaymentStatusResponse.model_validate(payment)
