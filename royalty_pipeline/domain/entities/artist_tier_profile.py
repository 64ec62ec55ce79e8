"""Artist tier profile entity: royalty rate reference data.

Slow-changing; mutated only by administrative action and read by the
calculation engine. Rates are exact decimals in minor currency units.
"""

from dataclasses import dataclass
from decimal import Decimal

from royalty_pipeline.domain.enums import ArtistTier
from royalty_pipeline.domain.exceptions import ValidationError

# Default multiplier per tier when an administrator does not set one explicitly.
TIER_MULTIPLIERS: dict[ArtistTier, Decimal] = {
    ArtistTier.STANDARD: Decimal("1.0"),
    ArtistTier.VERIFIED: Decimal("1.5"),
    ArtistTier.EXCLUSIVE: Decimal("2.0"),
}


@dataclass(frozen=True)
class ArtistTierProfile:
    """Rate card for one artist.

    payout_ceiling overrides the global auto-approval ceiling (minor units)
    for this artist when set.
    """

    artist_id: str
    tier: ArtistTier
    base_rate_per_play: Decimal
    tier_multiplier: Decimal
    payout_ceiling: int | None = None

    def __post_init__(self) -> None:
        if not self.artist_id:
            raise ValidationError("artist_id is required", field="artist_id")
        if not self.base_rate_per_play.is_finite() or self.base_rate_per_play < 0:
            raise ValidationError(
                "base_rate_per_play must be a non-negative number", field="base_rate_per_play"
            )
        if not self.tier_multiplier.is_finite() or self.tier_multiplier <= 0:
            raise ValidationError(
                "tier_multiplier must be positive", field="tier_multiplier"
            )
        if self.payout_ceiling is not None and self.payout_ceiling < 0:
            raise ValidationError(
                "payout_ceiling cannot be negative", field="payout_ceiling"
            )

    @classmethod
    def for_tier(
        cls,
        artist_id: str,
        tier: ArtistTier,
        base_rate_per_play: Decimal,
        payout_ceiling: int | None = None,
    ) -> "ArtistTierProfile":
        """Build a profile using the tier's default multiplier."""
        return cls(
            artist_id=artist_id,
            tier=tier,
            base_rate_per_play=base_rate_per_play,
            tier_multiplier=TIER_MULTIPLIERS[tier],
            payout_ceiling=payout_ceiling,
        )

    def effective_ceiling(self, default_ceiling: int) -> int:
        """Return the auto-approval ceiling that applies to this artist."""
        return self.payout_ceiling if self.payout_ceiling is not None else default_ceiling
