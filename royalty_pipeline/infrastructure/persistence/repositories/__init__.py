"""SQLAlchemy repository implementations of the application ports."""

from royalty_pipeline.infrastructure.persistence.repositories.aggregate_bucket_repo import (
    AggregateBucketRepository,
)
from royalty_pipeline.infrastructure.persistence.repositories.base import BaseRepository
from royalty_pipeline.infrastructure.persistence.repositories.payment_status_repo import (
    PaymentStatusRepository,
)
from royalty_pipeline.infrastructure.persistence.repositories.statement_repo import (
    StatementRepository,
)
from royalty_pipeline.infrastructure.persistence.repositories.stream_event_repo import (
    StreamEventRepository,
)
from royalty_pipeline.infrastructure.persistence.repositories.tier_profile_repo import (
    TierProfileRepository,
)

__all__ = [
    "AggregateBucketRepository",
    "BaseRepository",
    "PaymentStatusRepository",
    "StatementRepository",
    "StreamEventRepository",
    "TierProfileRepository",
]
