"""Manual royalty period runs (the scheduler uses scripts/run_royalty_period.py)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from royalty_pipeline.api.v1.dependencies import get_royalty_engine
from royalty_pipeline.application.dtos.royalty import RunReport
from royalty_pipeline.application.use_cases import RoyaltyCalculationEngine
from royalty_pipeline.core.limiter import limit_admin_actions
from royalty_pipeline.schemas.royalty import (
    ArtistRunOutcomeResponse,
    RoyaltyRunRequest,
    RunReportResponse,
)

router = APIRouter()


def to_run_report_response(report: RunReport) -> RunReportResponse:
    """Map the engine's RunReport to the API schema."""
    return RunReportResponse(
        period_start=report.period_start,
        period_end=report.period_end,
        windows_sealed=report.windows_sealed,
        created=report.created,
        approved=report.approved,
        manual_review=report.manual_review,
        skipped=report.skipped,
        failed=report.failed,
        total_net_amount=report.total_net_amount,
        cancelled=report.cancelled,
        outcomes=[ArtistRunOutcomeResponse.model_validate(o) for o in report.outcomes],
    )


@router.post(
    "",
    response_model=RunReportResponse,
    responses={409: {"description": "Period not closed yet"}},
)
@limit_admin_actions
async def run_royalty_period(
    request: Request,
    body: RoyaltyRunRequest,
    engine: Annotated[RoyaltyCalculationEngine, Depends(get_royalty_engine)],
):
    """Settle a closed period. Re-running skips artists that already have a statement."""
    report = await engine.run_period(body.period_start, body.period_end)
    return to_run_report_response(report)
