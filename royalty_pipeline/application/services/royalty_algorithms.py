"""Royalty algorithms: aggregated plays and rate cards to money.

Pure computation, no I/O. Per-bucket values are exact Decimals in minor
currency units; rounding (half-up, to whole minor units) happens once, at
statement level, so summing the same buckets in any order reproduces the
same statement.
"""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from royalty_pipeline.application.dtos.aggregation import AggregateBucket
from royalty_pipeline.application.dtos.royalty import StatementAmounts
from royalty_pipeline.domain.entities import ArtistTierProfile

_ZERO = Decimal(0)
_MINOR_UNIT = Decimal(1)


def compute_gross(bucket: AggregateBucket, profile: ArtistTierProfile) -> Decimal:
    """valid_play_count * base_rate_per_play * tier_multiplier (exact)."""
    return Decimal(bucket.valid_play_count) * profile.base_rate_per_play * profile.tier_multiplier


def compute_fraud_deduction(
    bucket: AggregateBucket, penalty_per_flagged_play: Decimal
) -> Decimal:
    """Penalty proportional to flagged plays (exact).

    Flagged plays are already excluded from gross; the penalty additionally
    reduces the statement.
    """
    if penalty_per_flagged_play < 0:
        raise ValueError("penalty_per_flagged_play cannot be negative")
    return Decimal(bucket.flagged_play_count) * penalty_per_flagged_play


def compute_net(gross: Decimal | int, deduction: Decimal | int) -> Decimal:
    """max(0, gross - deduction)."""
    return max(_ZERO, Decimal(gross) - Decimal(deduction))


def round_minor_units(amount: Decimal) -> int:
    """Round half-up to a whole number of minor units."""
    return int(amount.quantize(_MINOR_UNIT, rounding=ROUND_HALF_UP))


def summarize_buckets(
    buckets: Iterable[AggregateBucket],
    profile: ArtistTierProfile,
    penalty_per_flagged_play: Decimal,
) -> StatementAmounts:
    """Sum an artist's sealed buckets into statement amounts.

    Exact gross and deduction are accumulated across buckets, rounded once,
    and net is taken from the rounded figures so gross - deduction = net
    whenever the deduction does not exceed gross.
    """
    exact_gross = _ZERO
    exact_deduction = _ZERO
    valid = 0
    flagged = 0
    count = 0
    for bucket in buckets:
        if bucket.artist_id != profile.artist_id:
            raise ValueError(
                f"Bucket for artist {bucket.artist_id} passed to profile {profile.artist_id}"
            )
        exact_gross += compute_gross(bucket, profile)
        exact_deduction += compute_fraud_deduction(bucket, penalty_per_flagged_play)
        valid += bucket.valid_play_count
        flagged += bucket.flagged_play_count
        count += 1

    gross = round_minor_units(exact_gross)
    deduction = round_minor_units(exact_deduction)
    return StatementAmounts(
        gross_amount=gross,
        fraud_deduction=deduction,
        net_amount=int(compute_net(gross, deduction)),
        valid_play_count=valid,
        flagged_play_count=flagged,
        bucket_count=count,
        exact_gross=exact_gross,
        exact_deduction=exact_deduction,
    )
