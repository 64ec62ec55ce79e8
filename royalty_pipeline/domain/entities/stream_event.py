"""Stream event domain entity.

One recorded playback of a track by a listener. Stream events are
immutable (append-only audit log); use a frozen entity.
"""

import ipaddress
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from royalty_pipeline.domain.enums import SubscriptionTier
from royalty_pipeline.domain.exceptions import ValidationError
from royalty_pipeline.shared.utils.datetime import ensure_utc

_REQUIRED_IDS = ("event_id", "track_id", "artist_id", "listener_id", "device_id")
_MAX_ID_LENGTH = 128


@dataclass(frozen=True)
class StreamEvent:
    """Immutable playback event. Validation runs on construction.

    track_duration_ms is the known length of the track when the client
    reports it; the fraud analyzer uses it for the short-play ratio.
    """

    event_id: str
    track_id: str
    artist_id: str
    listener_id: str
    device_id: str
    timestamp: datetime
    duration_ms: int
    subscription_tier: SubscriptionTier
    source_ip: str
    track_duration_ms: int | None = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Validate event shape. Raises ValidationError if invalid."""
        for name in _REQUIRED_IDS:
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"{name} is required", field=name)
            if len(value) > _MAX_ID_LENGTH:
                raise ValidationError(
                    f"{name} must not exceed {_MAX_ID_LENGTH} characters", field=name
                )
            if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value):
                raise ValidationError(
                    f"{name} must not contain control characters", field=name
                )
        if not isinstance(self.timestamp, datetime) or self.timestamp.tzinfo is None:
            raise ValidationError("timestamp must be timezone-aware", field="timestamp")
        if isinstance(self.duration_ms, bool) or not isinstance(self.duration_ms, int):
            raise ValidationError("duration_ms must be an integer", field="duration_ms")
        if self.duration_ms < 0:
            raise ValidationError("duration_ms cannot be negative", field="duration_ms")
        if self.track_duration_ms is not None and self.track_duration_ms <= 0:
            raise ValidationError(
                "track_duration_ms must be positive when provided", field="track_duration_ms"
            )
        if not isinstance(self.subscription_tier, SubscriptionTier):
            raise ValidationError(
                f"subscription_tier must be one of {SubscriptionTier.values()}",
                field="subscription_tier",
            )
        try:
            ipaddress.ip_address(self.source_ip)
        except ValueError:
            raise ValidationError("source_ip is not a valid IP address", field="source_ip")

    def ensure_not_in_future(self, now: datetime, max_skew_seconds: int) -> None:
        """Reject timestamps further ahead of now than the allowed clock skew."""
        if ensure_utc(self.timestamp) > ensure_utc(now) + timedelta(seconds=max_skew_seconds):
            raise ValidationError("timestamp cannot be in the future", field="timestamp")

    @property
    def listen_ratio(self) -> float | None:
        """Fraction of the track that was played, or None when the length is unknown."""
        if not self.track_duration_ms:
            return None
        return self.duration_ms / self.track_duration_ms

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON (pub/sub messages, Redis history)."""
        return {
            "event_id": self.event_id,
            "track_id": self.track_id,
            "artist_id": self.artist_id,
            "listener_id": self.listener_id,
            "device_id": self.device_id,
            "timestamp": ensure_utc(self.timestamp).isoformat(),
            "duration_ms": self.duration_ms,
            "subscription_tier": self.subscription_tier.value,
            "source_ip": self.source_ip,
            "track_duration_ms": self.track_duration_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StreamEvent":
        """Deserialize from to_dict() output. Raises ValidationError on bad input."""
        try:
            tier = SubscriptionTier(data["subscription_tier"])
            timestamp = datetime.fromisoformat(data["timestamp"])
        except (KeyError, ValueError) as e:
            raise ValidationError(f"Malformed stream event: {e}")
        return cls(
            event_id=data.get("event_id", ""),
            track_id=data.get("track_id", ""),
            artist_id=data.get("artist_id", ""),
            listener_id=data.get("listener_id", ""),
            device_id=data.get("device_id", ""),
            timestamp=timestamp,
            duration_ms=data.get("duration_ms", -1),
            subscription_tier=tier,
            source_ip=data.get("source_ip", ""),
            track_duration_ms=data.get("track_duration_ms"),
        )
