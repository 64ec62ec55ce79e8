"""Artist stream stats and tier profile (rate card) endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from royalty_pipeline.api.v1.dependencies import get_stats_service, get_tier_profile_service
from royalty_pipeline.application.use_cases import ArtistStreamStatsService, TierProfileService
from royalty_pipeline.core.limiter import limit_writes
from royalty_pipeline.domain.entities import TIER_MULTIPLIERS, ArtistTierProfile
from royalty_pipeline.schemas.artist import TierProfileRequest, TierProfileResponse
from royalty_pipeline.schemas.stream_event import ArtistStreamStatsResponse

router = APIRouter()


def _to_profile_response(profile: ArtistTierProfile) -> TierProfileResponse:
    return TierProfileResponse(
        artist_id=profile.artist_id,
        tier=profile.tier,
        base_rate_per_play=profile.base_rate_per_play,
        tier_multiplier=profile.tier_multiplier,
        payout_ceiling=profile.payout_ceiling,
    )


@router.get("/{artist_id}/stream-stats", response_model=ArtistStreamStatsResponse)
async def get_stream_stats(
    artist_id: str,
    svc: Annotated[ArtistStreamStatsService, Depends(get_stats_service)],
    days: Annotated[int, Query(ge=1, le=365)] = 30,
):
    """Totals over the last `days` days, from the stream event log."""
    stats = await svc.get_stream_stats(artist_id, days=days)
    return ArtistStreamStatsResponse(
        artist_id=stats.artist_id,
        period_start=stats.period_start,
        period_end=stats.period_end,
        total_streams=stats.total_streams,
        valid_streams=stats.valid_streams,
        flagged_streams=stats.flagged_streams,
        rejected_streams=stats.rejected_streams,
        late_streams=stats.late_streams,
        estimated_earnings=stats.estimated_earnings,
    )


@router.get("/{artist_id}/tier-profile", response_model=TierProfileResponse)
async def get_tier_profile(
    artist_id: str,
    svc: Annotated[TierProfileService, Depends(get_tier_profile_service)],
):
    return _to_profile_response(await svc.get_profile(artist_id))


@router.put("/{artist_id}/tier-profile", response_model=TierProfileResponse)
@limit_writes
async def put_tier_profile(
    request: Request,
    artist_id: str,
    body: TierProfileRequest,
    svc: Annotated[TierProfileService, Depends(get_tier_profile_service)],
):
    """Create or replace the artist's rate card."""
    profile = ArtistTierProfile(
        artist_id=artist_id,
        tier=body.tier,
        base_rate_per_play=body.base_rate_per_play,
        tier_multiplier=(
            body.tier_multiplier
            if body.tier_multiplier is not None
            else TIER_MULTIPLIERS[body.tier]
        ),
        payout_ceiling=body.payout_ceiling,
    )
    return _to_profile_response(await svc.set_profile(profile))
