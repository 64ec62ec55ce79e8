"""Application use cases: one entry point per workflow."""

from royalty_pipeline.application.use_cases.aggregation import (
    AggregateQueryService,
    WindowSealingService,
)
from royalty_pipeline.application.use_cases.royalties import (
    PayoutDistributor,
    RoyaltyCalculationEngine,
    StatementService,
    TierProfileService,
)
from royalty_pipeline.application.use_cases.stats import ArtistStreamStatsService
from royalty_pipeline.application.use_cases.tracking import AggregateRebuilder, EventTracker

__all__ = [
    "AggregateQueryService",
    "AggregateRebuilder",
    "ArtistStreamStatsService",
    "EventTracker",
    "PayoutDistributor",
    "RoyaltyCalculationEngine",
    "StatementService",
    "TierProfileService",
    "WindowSealingService",
]
