"""Fraud analyzer: scores one stream event against its recent history.

Pure and stateless. The caller supplies the history (events for the same
listener or device); the result depends only on the event, the history and
the policy, so replays and audits reproduce the same verdict.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from royalty_pipeline.domain.entities import FraudAnalysisResult, StreamEvent
from royalty_pipeline.domain.enums import FraudFlag, FraudVerdict

if TYPE_CHECKING:
    from royalty_pipeline.core.config import Settings

SCORE_PRECISION = 4


@dataclass(frozen=True)
class FraudPolicy:
    """Thresholds and weights for the fraud heuristics.

    A rule triggers when its count (including the current play) is strictly
    greater than its max. Weights add up into the score, which is capped at
    1.0 and compared against clean_max and suspicious_max.
    """

    velocity_window_sec: int = 60
    velocity_max_plays: int = 5
    min_valid_listen_ratio: float = 0.25
    min_valid_listen_ms: int = 30_000
    fanout_window_sec: int = 600
    fanout_max_devices: int = 3
    repeat_window_sec: int = 900
    repeat_max_plays: int = 4
    clean_max: float = 0.3
    suspicious_max: float = 0.7
    weight_velocity: float = 0.4
    weight_short_play: float = 0.3
    weight_fanout: float = 0.4
    weight_repeat: float = 0.3

    def __post_init__(self) -> None:
        if not 0 < self.clean_max < self.suspicious_max <= 1:
            raise ValueError("Fraud thresholds must satisfy 0 < clean_max < suspicious_max <= 1")
        windows = (self.velocity_window_sec, self.fanout_window_sec, self.repeat_window_sec)
        if min(windows) <= 0:
            raise ValueError("Fraud windows must be positive")

    @classmethod
    def from_settings(cls, settings: Settings) -> FraudPolicy:
        """Build the policy from FRAUD_* settings."""
        return cls(
            velocity_window_sec=settings.fraud_velocity_window_sec,
            velocity_max_plays=settings.fraud_velocity_max_plays,
            min_valid_listen_ratio=settings.fraud_min_valid_listen_ratio,
            min_valid_listen_ms=settings.fraud_min_valid_listen_ms,
            fanout_window_sec=settings.fraud_fanout_window_sec,
            fanout_max_devices=settings.fraud_fanout_max_devices,
            repeat_window_sec=settings.fraud_repeat_window_sec,
            repeat_max_plays=settings.fraud_repeat_max_plays,
            clean_max=settings.fraud_clean_max,
            suspicious_max=settings.fraud_suspicious_max,
            weight_velocity=settings.fraud_weight_velocity,
            weight_short_play=settings.fraud_weight_short_play,
            weight_fanout=settings.fraud_weight_fanout,
            weight_repeat=settings.fraud_weight_repeat,
        )

    @property
    def lookback_seconds(self) -> int:
        """History span needed by the widest rule."""
        return max(self.velocity_window_sec, self.fanout_window_sec, self.repeat_window_sec)

    def verdict_for(self, score: float) -> FraudVerdict:
        if score < self.clean_max:
            return FraudVerdict.CLEAN
        if score < self.suspicious_max:
            return FraudVerdict.SUSPICIOUS
        return FraudVerdict.REJECTED


DEFAULT_POLICY = FraudPolicy()


def _within(
    event: StreamEvent, history: Iterable[StreamEvent], seconds: int
) -> list[StreamEvent]:
    """History entries in [event.timestamp - seconds, event.timestamp], excluding event itself."""
    lower = event.timestamp - timedelta(seconds=seconds)
    return [
        h
        for h in history
        if h.event_id != event.event_id and lower <= h.timestamp <= event.timestamp
    ]


def _is_velocity_abuse(
    event: StreamEvent, history: Sequence[StreamEvent], policy: FraudPolicy
) -> bool:
    recent = _within(event, history, policy.velocity_window_sec)
    listener_plays = 1 + sum(1 for h in recent if h.listener_id == event.listener_id)
    device_plays = 1 + sum(1 for h in recent if h.device_id == event.device_id)
    return max(listener_plays, device_plays) > policy.velocity_max_plays


def _is_short_play(event: StreamEvent, policy: FraudPolicy) -> bool:
    ratio = event.listen_ratio
    if ratio is not None:
        return ratio < policy.min_valid_listen_ratio
    return event.duration_ms < policy.min_valid_listen_ms


def _is_device_fanout(
    event: StreamEvent, history: Sequence[StreamEvent], policy: FraudPolicy
) -> bool:
    recent = [
        h
        for h in _within(event, history, policy.fanout_window_sec)
        if h.listener_id == event.listener_id
    ]
    devices = {event.device_id, *(h.device_id for h in recent)}
    source_ips = {event.source_ip, *(h.source_ip for h in recent)}
    return max(len(devices), len(source_ips)) > policy.fanout_max_devices


def _is_repeat_abuse(
    event: StreamEvent, history: Sequence[StreamEvent], policy: FraudPolicy
) -> bool:
    replays = 1 + sum(
        1
        for h in _within(event, history, policy.repeat_window_sec)
        if h.listener_id == event.listener_id and h.track_id == event.track_id
    )
    return replays > policy.repeat_max_plays


def analyze(
    event: StreamEvent,
    recent_history: Sequence[StreamEvent],
    policy: FraudPolicy = DEFAULT_POLICY,
) -> FraudAnalysisResult:
    """Score an event for velocity, short play, device fan-out and repetition.

    Args:
        event: The play being recorded.
        recent_history: Earlier plays for the same listener or device; order
            does not matter and entries outside the rule windows are ignored.
        policy: Thresholds and weights.

    Returns:
        FraudAnalysisResult with score rounded to 4 decimals, the triggered
        flags and the verdict.
    """
    flags: set[FraudFlag] = set()
    score = 0.0
    if _is_velocity_abuse(event, recent_history, policy):
        flags.add(FraudFlag.HIGH_VELOCITY)
        score += policy.weight_velocity
    if _is_short_play(event, policy):
        flags.add(FraudFlag.SHORT_PLAY)
        score += policy.weight_short_play
    if _is_device_fanout(event, recent_history, policy):
        flags.add(FraudFlag.DEVICE_FANOUT)
        score += policy.weight_fanout
    if _is_repeat_abuse(event, recent_history, policy):
        flags.add(FraudFlag.REPEAT_ABUSE)
        score += policy.weight_repeat

    score = round(min(score, 1.0), SCORE_PRECISION)
    return FraudAnalysisResult(
        event_id=event.event_id,
        score=score,
        flags=frozenset(flags),
        verdict=policy.verdict_for(score),
    )
