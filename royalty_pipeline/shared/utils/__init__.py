"""Shared utilities: UTC datetime helpers and ID generators."""

from royalty_pipeline.shared.utils.datetime import (
    ensure_utc,
    from_timestamp_ms_utc,
    from_timestamp_utc,
    to_timestamp_ms,
    utc_now,
)
from royalty_pipeline.shared.utils.generators import generate_cuid

__all__ = [
    "generate_cuid",
    "utc_now",
    "ensure_utc",
    "from_timestamp_utc",
    "from_timestamp_ms_utc",
    "to_timestamp_ms",
]
