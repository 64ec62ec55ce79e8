"""Prometheus counters for ingestion, settlement and payouts.

Exposed at /metrics by main.create_app via prometheus_client.make_asgi_app.
"""

from prometheus_client import Counter

STREAM_EVENTS_RECORDED_TOTAL = Counter(
    "stream_events_recorded_total",
    "Stream events appended to the audit log, grouped by fraud verdict.",
    labelnames=("verdict",),
)
STREAM_EVENTS_LATE_TOTAL = Counter(
    "stream_events_late_total",
    "Stream events recorded after their window closed or was sealed (excluded from aggregates).",
)
STREAM_EVENTS_DUPLICATE_TOTAL = Counter(
    "stream_events_duplicate_total",
    "Stream event submissions rejected as duplicates.",
)
FRAUD_HISTORY_DEGRADED_TOTAL = Counter(
    "fraud_history_degraded_total",
    "History lookups that timed out or failed; the event was scored without history.",
)
AGGREGATE_INCREMENT_FAILURES_TOTAL = Counter(
    "aggregate_increment_failures_total",
    "Aggregate increments that failed after all retries (window needs rebuild).",
)
ROYALTY_STATEMENTS_TOTAL = Counter(
    "royalty_statements_total",
    "Per-artist outcomes of royalty period runs.",
    labelnames=("outcome",),
)
PAYOUT_SUBMISSIONS_TOTAL = Counter(
    "payout_submissions_total",
    "Payout submissions to the external processor, grouped by result.",
    labelnames=("result",),
)
