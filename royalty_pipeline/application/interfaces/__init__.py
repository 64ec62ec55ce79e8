"""Application interfaces (ports): repository and service protocols.

Define contracts for infrastructure implementations (DIP).
No runtime imports from royalty_pipeline.infrastructure or the API layer.
"""

from royalty_pipeline.application.interfaces.repositories import (
    IAggregateBucketRepository,
    IPaymentStatusRepository,
    IStatementRepository,
    IStreamEventRepository,
    ITierProfileRepository,
    IUnitOfWork,
)
from royalty_pipeline.application.interfaces.services import (
    IAggregationStore,
    IEventPublisher,
    IPayoutGateway,
)

__all__ = [
    "IAggregateBucketRepository",
    "IAggregationStore",
    "IEventPublisher",
    "IPaymentStatusRepository",
    "IPayoutGateway",
    "IStatementRepository",
    "IStreamEventRepository",
    "ITierProfileRepository",
    "IUnitOfWork",
]
