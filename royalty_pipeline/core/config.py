"""Application configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Fraud thresholds, window sizes, money defaults and
payout limits are configuration, never constants in the services.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment and .env.

    All settings have defaults; cross-field rules are enforced in
    validate_consistency (fraud thresholds, backends, payout gateway).
    """

    # App
    app_name: str = "royalty-pipeline"
    app_version: str = "1.0.0"
    debug: bool = False

    # Database (Postgres via SQLAlchemy + Alembic). Empty URL = SQL not configured.
    database_url: str = ""
    database_echo: bool = False
    # Optional pool/driver overrides (None = use defaults in database.py)
    db_pool_size: int | None = None
    db_max_overflow: int | None = None
    db_command_timeout: int | None = None
    db_disable_jit: bool = True

    # Redis (aggregation store, history, pub/sub)
    redis_enabled: bool = True
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: SecretStr | None = None
    redis_socket_timeout: float = 2.0

    # Aggregation: "redis" (shared, multi-process) or "memory" (single process)
    aggregation_backend: str = "redis"
    aggregation_window_seconds: int = 3600
    aggregation_grace_seconds: int = 300
    history_max_entries: int = 200
    history_ttl_seconds: int = 86_400  # 24 hours
    aggregation_sealed_retention_seconds: int = 7 * 86_400

    # Fraud policy
    fraud_velocity_window_sec: int = 60
    fraud_velocity_max_plays: int = 5
    fraud_min_valid_listen_ratio: float = 0.25
    # Used when the track length is unknown.
    fraud_min_valid_listen_ms: int = 30_000
    fraud_fanout_window_sec: int = 600
    fraud_fanout_max_devices: int = 3
    fraud_repeat_window_sec: int = 900
    fraud_repeat_max_plays: int = 4
    fraud_clean_max: float = 0.3
    fraud_suspicious_max: float = 0.7
    fraud_weight_velocity: float = 0.4
    fraud_weight_short_play: float = 0.3
    fraud_weight_fanout: float = 0.4
    fraud_weight_repeat: float = 0.3

    # Ingestion
    history_lookup_timeout_seconds: float = 0.25
    persistence_timeout_seconds: float = 5.0
    increment_max_attempts: int = 3
    increment_backoff_seconds: float = 0.05
    ingestion_max_in_flight: int = 256
    ingestion_acquire_timeout_seconds: float = 1.0
    max_clock_skew_seconds: int = 120
    ingestion_rate_limit: str = "600/minute"

    # Royalties (amounts in minor currency units)
    currency: str = "USD"
    fraud_penalty_per_flagged_play: Decimal = Decimal("0")
    statement_auto_approve_ceiling: int = 10_000_000
    engine_max_parallel_artists: int = 8

    # Payouts: "log" (development, always accepts) or "http"
    payout_backend: str = "log"
    payout_api_url: str | None = None
    payout_api_key: SecretStr | None = None
    payout_timeout_seconds: float = 10.0
    payout_max_attempts: int = 3
    # Required by POST /payouts/webhook; callers send
    # X-Webhook-Signature-256: sha256=<hex(hmac_sha256(secret, body))>.
    payout_webhook_secret: SecretStr | None = None

    # Request / middleware
    request_timeout_seconds: int = 60
    request_id_header: str = "X-Request-ID"

    # OpenTelemetry
    telemetry_enabled: bool = False
    telemetry_exporter: str = "console"
    telemetry_otlp_endpoint: str | None = None
    telemetry_sample_rate: float = 1.0
    telemetry_environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_consistency(self) -> "Settings":
        """Validate cross-field rules.

        - Fraud verdict thresholds must be ordered within [0, 1].
        - Aggregation backend must be 'redis' or 'memory' ('redis' needs redis_enabled).
        - Payout backend 'http' requires PAYOUT_API_URL.
        """
        if not 0 < self.fraud_clean_max < self.fraud_suspicious_max <= 1:
            raise ValueError(
                "Fraud thresholds must satisfy 0 < FRAUD_CLEAN_MAX < FRAUD_SUSPICIOUS_MAX <= 1, "
                f"got {self.fraud_clean_max} and {self.fraud_suspicious_max}"
            )
        if self.aggregation_backend == "redis":
            if not self.redis_enabled:
                raise ValueError(
                    "aggregation_backend 'redis' requires REDIS_ENABLED=true. "
                    "Use AGGREGATION_BACKEND=memory for a single-process deployment."
                )
        elif self.aggregation_backend != "memory":
            raise ValueError(
                f"aggregation_backend must be 'redis' or 'memory', got: {self.aggregation_backend!r}"
            )
        if self.aggregation_window_seconds <= 0 or 86_400 % self.aggregation_window_seconds:
            raise ValueError(
                "AGGREGATION_WINDOW_SECONDS must be positive and divide a day evenly"
            )
        if self.payout_backend == "http":
            if not self.payout_api_url:
                raise ValueError(
                    "PAYOUT_API_URL is required when payout_backend is 'http'."
                )
        elif self.payout_backend != "log":
            raise ValueError(
                f"Invalid payout_backend '{self.payout_backend}'. Must be one of: 'log', 'http'"
            )
        if self.payout_max_attempts < 1 or self.increment_max_attempts < 1:
            raise ValueError("Attempt limits must be at least 1")
        return self

    @property
    def sql_configured(self) -> bool:
        """Return True when a Postgres URL is set."""
        return bool(self.database_url)


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.

    Returns:
        Loaded and validated Settings instance.
    """
    return Settings()
