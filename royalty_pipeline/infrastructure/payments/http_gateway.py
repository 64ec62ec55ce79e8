"""Payout processor client over HTTP (httpx)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from royalty_pipeline.application.dtos.royalty import PayoutSubmission, StatementResult
from royalty_pipeline.domain.exceptions import PaymentSubmissionError

logger = logging.getLogger(__name__)


class HttpPayoutGateway:
    """IPayoutGateway that posts payouts to the processor's /payouts endpoint.

    The statement id is sent as the idempotency key, so a resubmission after
    a lost response does not pay twice.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        timeout_seconds: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._http = (
            http_client if http_client is not None else httpx.AsyncClient(timeout=timeout_seconds)
        )
        self._owns_http = http_client is None

    async def aclose(self) -> None:
        """Close the HTTP client only if we created it (do not close injected client)."""
        if self._owns_http:
            await self._http.aclose()

    def _headers(self, statement: StatementResult) -> dict[str, str]:
        headers = {"Idempotency-Key": statement.id}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def submit_payout(self, statement: StatementResult) -> PayoutSubmission:
        """Submit the statement's payable amount.

        Raises:
            PaymentSubmissionError: Transport failure or a non-2xx response.
        """
        payload: dict[str, Any] = {
            "statement_id": statement.id,
            "artist_id": statement.artist_id,
            "amount": statement.payable_amount,
            "currency": statement.currency,
            "period_start": statement.period_start.isoformat(),
            "period_end": statement.period_end.isoformat(),
            "sequence": statement.sequence,
        }
        try:
            response = await self._http.post(
                f"{self._base_url}/payouts", json=payload, headers=self._headers(statement)
            )
        except httpx.HTTPError as e:
            logger.warning("Payout request for statement %s failed: %s", statement.id, e)
            raise PaymentSubmissionError(statement.id, f"transport error: {type(e).__name__}") from e

        if response.status_code >= 400:
            logger.error(
                "Payout processor rejected statement %s: status=%d",
                statement.id,
                response.status_code,
            )
            raise PaymentSubmissionError(
                statement.id, f"processor returned status {response.status_code}"
            )
        try:
            body: dict[str, Any] = response.json()
        except ValueError:
            body = {}
        accepted = body.get("accepted", True)
        return PayoutSubmission(
            accepted=bool(accepted),
            reference_id=body.get("reference_id") or body.get("id"),
            reason=body.get("reason"),
        )
