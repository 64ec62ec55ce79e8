"""Domain exceptions for the royalty pipeline.

Defines domain-level exceptions that represent business rule violations
and store/boundary failures the services must distinguish. These are
independent of infrastructure concerns; the presentation layer maps them
to HTTP responses in exception handlers.
"""

from datetime import datetime
from typing import Any


class RoyaltyPipelineException(Exception):
    """Base exception for all royalty pipeline errors.

    All custom exceptions inherit from this class to allow consistent
    error handling and logging. Presentation layer maps these to HTTP
    responses using message, error_code, and details.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. field, resource_id).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON error body used by the API."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(RoyaltyPipelineException):
    """Raised when input is missing or malformed. Never retried."""

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize with message and optional field name.

        Args:
            message: Description of the validation failure.
            field: Optional field or attribute that failed validation.
        """
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", details)


class DuplicateEventError(RoyaltyPipelineException):
    """Raised when a stream event id was already recorded (idempotent no-op)."""

    def __init__(self, event_id: str) -> None:
        super().__init__(
            f"Stream event already recorded: {event_id}",
            "DUPLICATE_EVENT",
            {"event_id": event_id},
        )


class WindowSealedError(RoyaltyPipelineException):
    """Raised when incrementing or replacing an aggregate window that is already sealed."""

    def __init__(self, window_start: datetime) -> None:
        """Initialize with the sealed window.

        Args:
            window_start: Start of the sealed window (UTC).
        """
        super().__init__(
            f"Aggregation window {window_start.isoformat()} is sealed",
            "WINDOW_SEALED",
            {"window_start": window_start.isoformat()},
        )


class WindowOpenError(RoyaltyPipelineException):
    """Raised when a rebuild targets a window that still accepts events."""

    def __init__(self, window_start: datetime, closes_at: datetime) -> None:
        super().__init__(
            f"Aggregation window {window_start.isoformat()} accepts events until "
            f"{closes_at.isoformat()}",
            "WINDOW_OPEN",
            {"window_start": window_start.isoformat(), "closes_at": closes_at.isoformat()},
        )


class TransientStoreError(RoyaltyPipelineException):
    """Raised when the aggregation store or persistence is temporarily unavailable.

    Callers retry with bounded backoff; the API maps it to 503.
    """

    def __init__(self, message: str, store: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            "TRANSIENT_STORE_ERROR",
            {"store": store, **(details or {})},
        )


class IngestionOverloadedError(TransientStoreError):
    """Raised when ingestion sheds load because too many records are in flight."""

    def __init__(self, max_in_flight: int) -> None:
        super().__init__(
            "Ingestion is overloaded; retry later",
            "ingestion",
            {"max_in_flight": max_in_flight},
        )
        self.error_code = "INGESTION_OVERLOADED"


class RequiresManualReview(RoyaltyPipelineException):
    """Outcome raised when a statement exceeds its auto-approval ceiling.

    The statement stays CALCULATED with requires_manual_review set and is
    surfaced for human sign-off.
    """

    def __init__(self, artist_id: str, statement_id: str, net_amount: int, ceiling: int) -> None:
        super().__init__(
            f"Statement {statement_id} for artist {artist_id} exceeds ceiling "
            f"({net_amount} > {ceiling}); manual review required",
            "REQUIRES_MANUAL_REVIEW",
            {
                "artist_id": artist_id,
                "statement_id": statement_id,
                "net_amount": net_amount,
                "ceiling": ceiling,
            },
        )


class PaymentSubmissionError(RoyaltyPipelineException):
    """Raised when the payout boundary rejects or fails a submission."""

    def __init__(self, statement_id: str, reason: str) -> None:
        super().__init__(
            f"Payout submission failed for statement {statement_id}: {reason}",
            "PAYMENT_SUBMISSION_FAILED",
            {"statement_id": statement_id, "reason": reason},
        )


class ResourceNotFoundException(RoyaltyPipelineException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        """Initialize with resource type and id.

        Args:
            resource_type: Type of resource (e.g. 'statement', 'tier_profile').
            resource_id: The ID that was not found.
        """
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            "RESOURCE_NOT_FOUND",
            {"resource_type": resource_type, "resource_id": resource_id},
        )


class InvalidStatusTransitionError(RoyaltyPipelineException):
    """Raised when a statement or payment status change is not in its transition table."""

    def __init__(self, entity: str, entity_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Cannot move {entity} {entity_id} from {current} to {target}",
            "INVALID_STATUS_TRANSITION",
            {"entity": entity, "entity_id": entity_id, "current": current, "target": target},
        )


class StatementAlreadyExistsError(RoyaltyPipelineException):
    """Raised when a statement for (artist, period, sequence) already exists (unique constraint)."""

    def __init__(self, artist_id: str, period_start: str, period_end: str, sequence: int = 0) -> None:
        super().__init__(
            f"Statement already exists for artist {artist_id} in {period_start}..{period_end}",
            "STATEMENT_ALREADY_EXISTS",
            {
                "artist_id": artist_id,
                "period_start": period_start,
                "period_end": period_end,
                "sequence": sequence,
            },
        )


class PeriodNotClosedError(RoyaltyPipelineException):
    """Raised when a settlement period is requested before its windows can be sealed."""

    def __init__(self, period_end: str, closes_at: str) -> None:
        super().__init__(
            f"Period ending {period_end} is not closed until {closes_at}",
            "PERIOD_NOT_CLOSED",
            {"period_end": period_end, "closes_at": closes_at},
        )


class SqlNotConfiguredException(RoyaltyPipelineException):
    """Raised when an operation requires Postgres but DATABASE_URL is not set."""

    def __init__(self) -> None:
        super().__init__(
            message="This operation requires a SQL database that is not configured.",
            error_code="SERVICE_UNAVAILABLE",
        )
