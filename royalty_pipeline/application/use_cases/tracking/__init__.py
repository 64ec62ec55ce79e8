"""Stream event tracking: ingestion and aggregate rebuild."""

from royalty_pipeline.application.use_cases.tracking.rebuild_window import AggregateRebuilder
from royalty_pipeline.application.use_cases.tracking.record_stream_event import (
    EventTracker,
    delta_for,
)

__all__ = ["AggregateRebuilder", "EventTracker", "delta_for"]
