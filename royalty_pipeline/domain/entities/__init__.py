"""Domain entities.

Pure domain models; no ORM or persistence concerns.
"""

from royalty_pipeline.domain.entities.artist_tier_profile import (
    TIER_MULTIPLIERS,
    ArtistTierProfile,
)
from royalty_pipeline.domain.entities.fraud_analysis import FraudAnalysisResult
from royalty_pipeline.domain.entities.stream_event import StreamEvent

__all__ = [
    "ArtistTierProfile",
    "FraudAnalysisResult",
    "StreamEvent",
    "TIER_MULTIPLIERS",
]
