"""Artist tier profile repository (rate card reference data)."""

from sqlalchemy.ext.asyncio import AsyncSession

from royalty_pipeline.domain.entities import ArtistTierProfile
from royalty_pipeline.domain.enums import ArtistTier
from royalty_pipeline.infrastructure.persistence.models.artist_tier_profile import (
    ArtistTierProfileModel,
)
from royalty_pipeline.infrastructure.persistence.repositories.base import BaseRepository


def _model_to_profile(row: ArtistTierProfileModel) -> ArtistTierProfile:
    return ArtistTierProfile(
        artist_id=row.artist_id,
        tier=ArtistTier(row.tier),
        base_rate_per_play=row.base_rate_per_play,
        tier_multiplier=row.tier_multiplier,
        payout_ceiling=row.payout_ceiling,
    )


class TierProfileRepository(BaseRepository[ArtistTierProfileModel]):
    def __init__(self, db: AsyncSession) -> None:
        super().__init__(db, ArtistTierProfileModel)

    async def get(self, artist_id: str) -> ArtistTierProfile | None:
        row = await self.get_by_pk(artist_id)
        return _model_to_profile(row) if row else None

    async def upsert(self, profile: ArtistTierProfile) -> ArtistTierProfile:
        row = await self.get_by_pk(profile.artist_id)
        if row is None:
            row = await self.create(
                ArtistTierProfileModel(
                    artist_id=profile.artist_id,
                    tier=profile.tier.value,
                    base_rate_per_play=profile.base_rate_per_play,
                    tier_multiplier=profile.tier_multiplier,
                    payout_ceiling=profile.payout_ceiling,
                )
            )
            return _model_to_profile(row)
        row.tier = profile.tier.value
        row.base_rate_per_play = profile.base_rate_per_play
        row.tier_multiplier = profile.tier_multiplier
        row.payout_ceiling = profile.payout_ceiling
        await self.db.flush()
        await self.db.refresh(row)
        return _model_to_profile(row)
