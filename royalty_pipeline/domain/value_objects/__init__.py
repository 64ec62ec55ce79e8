"""Domain value objects: aggregation windows and settlement periods."""

from royalty_pipeline.domain.value_objects.core import (
    AggregationWindow,
    SettlementPeriod,
    align_window_start,
)

__all__ = ["AggregationWindow", "SettlementPeriod", "align_window_start"]
