"""Payout gateways (external payment processor boundary)."""

from royalty_pipeline.application.interfaces.services import IPayoutGateway
from royalty_pipeline.core.config import Settings
from royalty_pipeline.infrastructure.payments.http_gateway import HttpPayoutGateway
from royalty_pipeline.infrastructure.payments.log_gateway import LogOnlyPayoutGateway


def create_payout_gateway(settings: Settings) -> IPayoutGateway:
    """Return the gateway selected by PAYOUT_BACKEND ('log' or 'http')."""
    if settings.payout_backend == "http":
        return HttpPayoutGateway(
            settings.payout_api_url or "",
            settings.payout_api_key.get_secret_value() if settings.payout_api_key else None,
            timeout_seconds=settings.payout_timeout_seconds,
        )
    return LogOnlyPayoutGateway()


__all__ = ["HttpPayoutGateway", "LogOnlyPayoutGateway", "create_payout_gateway"]
