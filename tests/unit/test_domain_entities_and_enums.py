"""Tests for domain entities (StreamEvent, ArtistTierProfile, FraudAnalysisResult) and enums."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from royalty_pipeline.domain.entities import (
    TIER_MULTIPLIERS,
    ArtistTierProfile,
    FraudAnalysisResult,
)
from royalty_pipeline.domain.enums import (
    ArtistTier,
    FraudFlag,
    FraudVerdict,
    PaymentState,
    RoyaltyStatus,
    SubscriptionTier,
    can_transition_payment,
    can_transition_statement,
)
from royalty_pipeline.domain.exceptions import ValidationError


class TestStreamEvent:
    def test_valid_event(self, event_factory) -> None:
        event = event_factory()
        assert event.event_id == "ev-1"
        assert event.listen_ratio == pytest.approx(0.9)

    @pytest.mark.parametrize("field", ["event_id", "track_id", "artist_id", "listener_id", "device_id"])
    def test_blank_identifier_rejected(self, event_factory, field: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            event_factory(**{field: "  "})
        assert exc_info.value.details == {"field": field}

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("artist_id", "a\x1fb"),
            ("track_id", "t\n1"),
            ("listener_id", "l\x7f"),
            ("event_id", "e\x00"),
        ],
    )
    def test_control_characters_in_identifier_rejected(
        self, event_factory, field: str, value: str
    ) -> None:
        with pytest.raises(ValidationError, match="control characters") as exc_info:
            event_factory(**{field: value})
        assert exc_info.value.details == {"field": field}

    def test_overlong_identifier_rejected(self, event_factory) -> None:
        with pytest.raises(ValidationError, match="must not exceed"):
            event_factory(track_id="t" * 129)

    def test_naive_timestamp_rejected(self, event_factory) -> None:
        with pytest.raises(ValidationError, match="timezone-aware"):
            event_factory(timestamp=datetime(2025, 1, 13, 12, 0))

    def test_negative_duration_rejected(self, event_factory) -> None:
        with pytest.raises(ValidationError, match="duration_ms"):
            event_factory(duration_ms=-1)

    def test_zero_duration_is_valid(self, event_factory) -> None:
        assert event_factory(duration_ms=0).duration_ms == 0

    def test_bool_duration_rejected(self, event_factory) -> None:
        with pytest.raises(ValidationError, match="integer"):
            event_factory(duration_ms=True)

    def test_non_positive_track_duration_rejected(self, event_factory) -> None:
        with pytest.raises(ValidationError, match="track_duration_ms"):
            event_factory(track_duration_ms=0)

    def test_invalid_ip_rejected(self, event_factory) -> None:
        with pytest.raises(ValidationError) as exc_info:
            event_factory(source_ip="999.1.1.1")
        assert exc_info.value.details == {"field": "source_ip"}

    def test_ipv6_accepted(self, event_factory) -> None:
        assert event_factory(source_ip="2001:db8::1").source_ip == "2001:db8::1"

    def test_unknown_subscription_tier_rejected(self, event_factory) -> None:
        with pytest.raises(ValidationError, match="subscription_tier"):
            event_factory(subscription_tier="gold")

    def test_future_timestamp_beyond_skew_rejected(self, event_factory) -> None:
        now = datetime(2025, 1, 13, 12, 0, tzinfo=UTC)
        event = event_factory(timestamp=now + timedelta(seconds=121))
        with pytest.raises(ValidationError, match="future"):
            event.ensure_not_in_future(now, max_skew_seconds=120)

    def test_future_timestamp_within_skew_allowed(self, event_factory) -> None:
        now = datetime(2025, 1, 13, 12, 0, tzinfo=UTC)
        event = event_factory(timestamp=now + timedelta(seconds=60))
        event.ensure_not_in_future(now, max_skew_seconds=120)

    def test_listen_ratio_unknown_without_track_length(self, event_factory) -> None:
        assert event_factory(track_duration_ms=None).listen_ratio is None

    def test_dict_serialization_preserves_event(self, event_factory) -> None:
        event = event_factory(subscription_tier=SubscriptionTier.FAMILY)
        data = event.to_dict()
        assert data["subscription_tier"] == "family"
        assert data["timestamp"].endswith("+00:00")
        assert type(event).from_dict(data) == event

    def test_from_dict_malformed(self, event_factory) -> None:
        data = event_factory().to_dict()
        data["timestamp"] = "not-a-date"
        with pytest.raises(ValidationError, match="Malformed"):
            type(event_factory()).from_dict(data)

    def test_is_immutable(self, event_factory) -> None:
        event = event_factory()
        with pytest.raises(AttributeError):
            event.duration_ms = 1  # type: ignore[misc]


class TestArtistTierProfile:
    def test_for_tier_uses_default_multiplier(self) -> None:
        profile = ArtistTierProfile.for_tier("a1", ArtistTier.VERIFIED, Decimal("0.4"))
        assert profile.tier_multiplier == TIER_MULTIPLIERS[ArtistTier.VERIFIED] == Decimal("1.5")

    def test_negative_rate_rejected(self) -> None:
        with pytest.raises(ValidationError, match="base_rate_per_play"):
            ArtistTierProfile("a1", ArtistTier.STANDARD, Decimal("-0.1"), Decimal("1"))

    def test_non_finite_rate_rejected(self) -> None:
        with pytest.raises(ValidationError, match="base_rate_per_play"):
            ArtistTierProfile("a1", ArtistTier.STANDARD, Decimal("NaN"), Decimal("1"))

    def test_zero_multiplier_rejected(self) -> None:
        with pytest.raises(ValidationError, match="tier_multiplier"):
            ArtistTierProfile("a1", ArtistTier.STANDARD, Decimal("1"), Decimal("0"))

    def test_negative_ceiling_rejected(self) -> None:
        with pytest.raises(ValidationError, match="payout_ceiling"):
            ArtistTierProfile("a1", ArtistTier.STANDARD, Decimal("1"), Decimal("1"), -5)

    def test_effective_ceiling(self) -> None:
        default = ArtistTierProfile.for_tier("a1", ArtistTier.STANDARD, Decimal("1"))
        override = ArtistTierProfile.for_tier("a1", ArtistTier.STANDARD, Decimal("1"), 500)
        assert default.effective_ceiling(10_000) == 10_000
        assert override.effective_ceiling(10_000) == 500


class TestFraudAnalysisResult:
    def test_score_out_of_range_rejected(self) -> None:
        with pytest.raises(ValueError, match="within"):
            FraudAnalysisResult("e1", 1.2, frozenset(), FraudVerdict.REJECTED)

    def test_verdict_helpers(self) -> None:
        clean = FraudAnalysisResult("e1", 0.0, frozenset(), FraudVerdict.CLEAN)
        flagged = FraudAnalysisResult(
            "e2", 0.3, frozenset({FraudFlag.SHORT_PLAY}), FraudVerdict.SUSPICIOUS
        )
        assert clean.counts_as_valid and not clean.counts_as_flagged
        assert flagged.counts_as_flagged and not flagged.counts_as_valid

    def test_sorted_flags(self) -> None:
        result = FraudAnalysisResult(
            "e1",
            0.7,
            frozenset({FraudFlag.SHORT_PLAY, FraudFlag.HIGH_VELOCITY}),
            FraudVerdict.REJECTED,
        )
        assert result.sorted_flags() == ["HIGH_VELOCITY", "SHORT_PLAY"]


class TestEnums:
    def test_values(self) -> None:
        assert FraudVerdict.values() == ["clean", "suspicious", "rejected"]
        assert "premium" in SubscriptionTier.values()

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (RoyaltyStatus.PENDING, RoyaltyStatus.CALCULATED),
            (RoyaltyStatus.CALCULATED, RoyaltyStatus.APPROVED),
            (RoyaltyStatus.APPROVED, RoyaltyStatus.PAID),
            (RoyaltyStatus.APPROVED, RoyaltyStatus.FAILED),
            (RoyaltyStatus.FAILED, RoyaltyStatus.APPROVED),
            (RoyaltyStatus.PAID, RoyaltyStatus.DISPUTED),
        ],
    )
    def test_allowed_statement_transitions(
        self, current: RoyaltyStatus, target: RoyaltyStatus
    ) -> None:
        assert can_transition_statement(current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (RoyaltyStatus.PENDING, RoyaltyStatus.APPROVED),
            (RoyaltyStatus.CALCULATED, RoyaltyStatus.PAID),
            (RoyaltyStatus.PAID, RoyaltyStatus.APPROVED),
            (RoyaltyStatus.DISPUTED, RoyaltyStatus.PAID),
        ],
    )
    def test_forbidden_statement_transitions(
        self, current: RoyaltyStatus, target: RoyaltyStatus
    ) -> None:
        assert not can_transition_statement(current, target)

    def test_payment_transitions(self) -> None:
        assert can_transition_payment(PaymentState.PENDING, PaymentState.PROCESSING)
        assert can_transition_payment(PaymentState.FAILED, PaymentState.FAILED)
        assert not can_transition_payment(PaymentState.PAID, PaymentState.FAILED)
        assert not can_transition_payment(PaymentState.PENDING, PaymentState.PAID)
