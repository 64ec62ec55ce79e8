"""Persistence models: ORM entities and mixins."""

from royalty_pipeline.infrastructure.persistence.models.aggregate_bucket import (
    AggregateBucketSnapshot,
    SealedWindow,
)
from royalty_pipeline.infrastructure.persistence.models.artist_tier_profile import (
    ArtistTierProfileModel,
)
from royalty_pipeline.infrastructure.persistence.models.mixins import (
    CuidMixin,
    TimestampMixin,
)
from royalty_pipeline.infrastructure.persistence.models.royalty_statement import (
    PaymentStatus,
    RoyaltyStatement,
    StatementTransition,
)
from royalty_pipeline.infrastructure.persistence.models.stream_event import (
    StreamEventLog,
)

__all__ = [
    "AggregateBucketSnapshot",
    "ArtistTierProfileModel",
    "CuidMixin",
    "PaymentStatus",
    "RoyaltyStatement",
    "SealedWindow",
    "StatementTransition",
    "StreamEventLog",
    "TimestampMixin",
]
