"""Domain layer: entities, value objects, enums, and exceptions.

No dependencies on infrastructure or presentation. Used by application
and infrastructure layers.
"""

from royalty_pipeline.domain.entities import (
    ArtistTierProfile,
    FraudAnalysisResult,
    StreamEvent,
)
from royalty_pipeline.domain.enums import (
    ArtistTier,
    FraudFlag,
    FraudVerdict,
    PaymentState,
    RoyaltyStatus,
    SubscriptionTier,
)
from royalty_pipeline.domain.exceptions import (
    DuplicateEventError,
    PaymentSubmissionError,
    RequiresManualReview,
    RoyaltyPipelineException,
    TransientStoreError,
    ValidationError,
    WindowOpenError,
    WindowSealedError,
)
from royalty_pipeline.domain.value_objects import AggregationWindow, SettlementPeriod

__all__ = [
    # Entities
    "ArtistTierProfile",
    "FraudAnalysisResult",
    "StreamEvent",
    # Enums
    "ArtistTier",
    "FraudFlag",
    "FraudVerdict",
    "PaymentState",
    "RoyaltyStatus",
    "SubscriptionTier",
    # Exceptions
    "DuplicateEventError",
    "PaymentSubmissionError",
    "RequiresManualReview",
    "RoyaltyPipelineException",
    "TransientStoreError",
    "ValidationError",
    "WindowOpenError",
    "WindowSealedError",
    # Value objects
    "AggregationWindow",
    "SettlementPeriod",
]
