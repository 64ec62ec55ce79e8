"""Royalty settlement: period runs, statements, tier profiles and payouts."""

from royalty_pipeline.application.use_cases.royalties.payouts import PayoutDistributor
from royalty_pipeline.application.use_cases.royalties.run_period import (
    RoyaltyCalculationEngine,
)
from royalty_pipeline.application.use_cases.royalties.statements import StatementService
from royalty_pipeline.application.use_cases.royalties.tier_profiles import TierProfileService

__all__ = [
    "PayoutDistributor",
    "RoyaltyCalculationEngine",
    "StatementService",
    "TierProfileService",
]
