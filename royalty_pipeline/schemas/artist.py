"""Artist tier profile schemas."""

from decimal import Decimal

from pydantic import BaseModel, Field

from royalty_pipeline.domain.enums import ArtistTier


class TierProfileRequest(BaseModel):
    """Rate card. tier_multiplier defaults to the tier's standard multiplier."""

    tier: ArtistTier
    base_rate_per_play: Decimal = Field(..., ge=0, max_digits=20, decimal_places=8)
    tier_multiplier: Decimal | None = Field(default=None, gt=0, max_digits=8, decimal_places=4)
    payout_ceiling: int | None = Field(default=None, ge=0)


class TierProfileResponse(BaseModel):
    artist_id: str
    tier: ArtistTier
    base_rate_per_play: Decimal
    tier_multiplier: Decimal
    payout_ceiling: int | None = None
