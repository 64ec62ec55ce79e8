"""Aggregation window lifecycle and sealed bucket reads."""

from royalty_pipeline.application.use_cases.aggregation.queries import AggregateQueryService
from royalty_pipeline.application.use_cases.aggregation.seal_windows import WindowSealingService

__all__ = ["AggregateQueryService", "WindowSealingService"]
