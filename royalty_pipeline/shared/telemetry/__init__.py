"""Shared telemetry: logging setup, OpenTelemetry config, tracing helpers, metrics."""

from royalty_pipeline.shared.telemetry.logging import get_logger, setup_logging
from royalty_pipeline.shared.telemetry.tracing import (
    TracedOperation,
    add_span_attributes,
    traced,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "traced",
    "add_span_attributes",
    "TracedOperation",
]
