"""Artist tier profile administration."""

from collections.abc import Callable

from royalty_pipeline.application.interfaces.repositories import IUnitOfWork
from royalty_pipeline.domain.entities import ArtistTierProfile
from royalty_pipeline.domain.exceptions import ResourceNotFoundException
from royalty_pipeline.shared.telemetry.logging import get_logger

logger = get_logger(__name__)


class TierProfileService:
    def __init__(self, uow_factory: Callable[[], IUnitOfWork]) -> None:
        self.uow_factory = uow_factory

    async def get_profile(self, artist_id: str) -> ArtistTierProfile:
        async with self.uow_factory() as uow:
            profile = await uow.profiles.get(artist_id)
        if profile is None:
            raise ResourceNotFoundException("artist_tier_profile", artist_id)
        return profile

    async def set_profile(self, profile: ArtistTierProfile) -> ArtistTierProfile:
        """Create or replace an artist's rate card; applies to periods settled afterwards."""
        async with self.uow_factory() as uow:
            saved = await uow.profiles.upsert(profile)
        logger.info(
            "Tier profile for artist %s set: tier=%s rate=%s multiplier=%s ceiling=%s",
            saved.artist_id,
            saved.tier.value,
            saved.base_rate_per_play,
            saved.tier_multiplier,
            saved.payout_ceiling,
        )
        return saved
