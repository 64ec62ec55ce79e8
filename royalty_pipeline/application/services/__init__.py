"""Application services: pure fraud scoring and royalty math."""

from royalty_pipeline.application.services.fraud_analyzer import (
    DEFAULT_POLICY,
    FraudPolicy,
    analyze,
)
from royalty_pipeline.application.services.royalty_algorithms import (
    compute_fraud_deduction,
    compute_gross,
    compute_net,
    round_minor_units,
    summarize_buckets,
)

__all__ = [
    "DEFAULT_POLICY",
    "FraudPolicy",
    "analyze",
    "compute_fraud_deduction",
    "compute_gross",
    "compute_net",
    "round_minor_units",
    "summarize_buckets",
]
