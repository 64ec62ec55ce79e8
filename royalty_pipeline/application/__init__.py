"""Application layer: interfaces, services, use cases.

Depends only on domain and protocol definitions (DIP).
Infrastructure implements the interfaces (aggregation stores, repositories,
publisher, payout gateway).
"""

from royalty_pipeline.application.interfaces import (
    IAggregateBucketRepository,
    IAggregationStore,
    IEventPublisher,
    IPaymentStatusRepository,
    IPayoutGateway,
    IStatementRepository,
    IStreamEventRepository,
    ITierProfileRepository,
    IUnitOfWork,
)
from royalty_pipeline.application.services import FraudPolicy, analyze
from royalty_pipeline.application.use_cases import (
    EventTracker,
    RoyaltyCalculationEngine,
)

__all__ = [
    "EventTracker",
    "FraudPolicy",
    "IAggregateBucketRepository",
    "IAggregationStore",
    "IEventPublisher",
    "IPaymentStatusRepository",
    "IPayoutGateway",
    "IStatementRepository",
    "IStreamEventRepository",
    "ITierProfileRepository",
    "IUnitOfWork",
    "RoyaltyCalculationEngine",
    "analyze",
]
