"""Application DTOs: frozen dataclasses passed between use cases and repositories."""

from royalty_pipeline.application.dtos.aggregation import (
    AggregateBucket,
    BucketDelta,
    RebuildResult,
    SealedWindowResult,
    SealRunResult,
)
from royalty_pipeline.application.dtos.royalty import (
    ArtistRunOutcome,
    ArtistRunStatus,
    DistributionReport,
    PaymentStatusResult,
    PayoutSubmission,
    RunReport,
    StatementAmounts,
    StatementCreate,
    StatementResult,
    StatementTransitionResult,
)
from royalty_pipeline.application.dtos.stream_event import (
    ArtistStreamStats,
    RecordResult,
    StreamEventRecord,
)

__all__ = [
    "AggregateBucket",
    "ArtistRunOutcome",
    "ArtistRunStatus",
    "ArtistStreamStats",
    "BucketDelta",
    "DistributionReport",
    "PaymentStatusResult",
    "PayoutSubmission",
    "RebuildResult",
    "RecordResult",
    "RunReport",
    "SealedWindowResult",
    "SealRunResult",
    "StatementAmounts",
    "StatementCreate",
    "StatementResult",
    "StatementTransitionResult",
    "StreamEventRecord",
]
