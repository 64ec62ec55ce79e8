"""Domain enumerations for the royalty pipeline.

Enums represent fixed sets of domain values. Lifecycle enums
(RoyaltyStatus, PaymentState) have explicit transition tables shared
by the services and the repositories.
"""

from enum import Enum


class _ValuesMixin:
    """Mixin that adds a values() classmethod to str Enums."""

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid values as strings."""
        return [member.value for member in cls]


class SubscriptionTier(_ValuesMixin, str, Enum):
    """Listener subscription tier at the time of the play."""

    FREE = "free"
    STANDARD = "standard"
    PREMIUM = "premium"
    FAMILY = "family"


class FraudVerdict(_ValuesMixin, str, Enum):
    """Classification of a stream event by the fraud analyzer.

    CLEAN plays count as valid, SUSPICIOUS plays count as flagged,
    REJECTED plays never reach the aggregates.
    """

    CLEAN = "clean"
    SUSPICIOUS = "suspicious"
    REJECTED = "rejected"


class FraudFlag(_ValuesMixin, str, Enum):
    """Reason codes raised by individual fraud heuristics."""

    HIGH_VELOCITY = "HIGH_VELOCITY"
    SHORT_PLAY = "SHORT_PLAY"
    DEVICE_FANOUT = "DEVICE_FANOUT"
    REPEAT_ABUSE = "REPEAT_ABUSE"


class ArtistTier(_ValuesMixin, str, Enum):
    """Artist tier driving the default royalty multiplier."""

    STANDARD = "standard"
    VERIFIED = "verified"
    EXCLUSIVE = "exclusive"


class RoyaltyStatus(_ValuesMixin, str, Enum):
    """Royalty statement lifecycle status."""

    PENDING = "pending"
    CALCULATED = "calculated"
    APPROVED = "approved"
    PAID = "paid"
    FAILED = "failed"
    DISPUTED = "disputed"


class PaymentState(_ValuesMixin, str, Enum):
    """State of the handoff to the external payout processor."""

    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"


# FAILED -> APPROVED only re-queues a payout; the retry budget is enforced by the distributor.
STATEMENT_TRANSITIONS: dict[RoyaltyStatus, frozenset[RoyaltyStatus]] = {
    RoyaltyStatus.PENDING: frozenset({RoyaltyStatus.CALCULATED}),
    RoyaltyStatus.CALCULATED: frozenset({RoyaltyStatus.APPROVED, RoyaltyStatus.FAILED}),
    RoyaltyStatus.APPROVED: frozenset({RoyaltyStatus.PAID, RoyaltyStatus.FAILED}),
    RoyaltyStatus.FAILED: frozenset({RoyaltyStatus.APPROVED}),
    RoyaltyStatus.PAID: frozenset({RoyaltyStatus.DISPUTED}),
    RoyaltyStatus.DISPUTED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentState, frozenset[PaymentState]] = {
    PaymentState.PENDING: frozenset({PaymentState.PROCESSING, PaymentState.FAILED}),
    PaymentState.PROCESSING: frozenset({PaymentState.PAID, PaymentState.FAILED}),
    # FAILED -> FAILED records another unsuccessful retry.
    PaymentState.FAILED: frozenset({PaymentState.PROCESSING, PaymentState.FAILED}),
    PaymentState.PAID: frozenset(),
}


def can_transition_statement(current: RoyaltyStatus, target: RoyaltyStatus) -> bool:
    """Return whether a statement may move from current to target."""
    return target in STATEMENT_TRANSITIONS[current]


def can_transition_payment(current: PaymentState, target: PaymentState) -> bool:
    """Return whether a payment status may move from current to target."""
    return target in PAYMENT_TRANSITIONS[current]
