"""Artist tier profile ORM model (royalty rate reference data)."""

from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from royalty_pipeline.infrastructure.persistence.database import Base
from royalty_pipeline.infrastructure.persistence.models.mixins import TimestampMixin


class ArtistTierProfileModel(TimestampMixin, Base):
    """Rate card per artist. Table: artist_tier_profile."""

    __tablename__ = "artist_tier_profile"

    artist_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    tier: Mapped[str] = mapped_column(String(16), nullable=False)
    base_rate_per_play: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    tier_multiplier: Mapped[Decimal] = mapped_column(Numeric(8, 4), nullable=False)
    payout_ceiling: Mapped[int | None] = mapped_column(BigInteger)

    __table_args__ = (
        CheckConstraint(
            "tier IN ('standard', 'verified', 'exclusive')", name="ck_artist_tier_profile_tier"
        ),
        CheckConstraint("base_rate_per_play >= 0", name="ck_artist_tier_profile_rate"),
        CheckConstraint("tier_multiplier > 0", name="ck_artist_tier_profile_multiplier"),
    )
