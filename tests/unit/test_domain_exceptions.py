"""Tests for domain exceptions (error_code, message, details)."""

from datetime import UTC, datetime

from royalty_pipeline.domain.exceptions import (
    DuplicateEventError,
    IngestionOverloadedError,
    InvalidStatusTransitionError,
    PaymentSubmissionError,
    PeriodNotClosedError,
    RequiresManualReview,
    ResourceNotFoundException,
    RoyaltyPipelineException,
    SqlNotConfiguredException,
    StatementAlreadyExistsError,
    TransientStoreError,
    ValidationError,
    WindowSealedError,
)


def test_base_exception_default_error_code() -> None:
    """Base RoyaltyPipelineException uses class name as error_code when not provided."""
    exc = RoyaltyPipelineException("Something failed")
    assert exc.message == "Something failed"
    assert exc.error_code == "RoyaltyPipelineException"
    assert exc.details == {}


def test_to_dict() -> None:
    exc = RoyaltyPipelineException("Oops", error_code="CUSTOM", details={"key": "value"})
    assert exc.to_dict() == {"error": "CUSTOM", "message": "Oops", "details": {"key": "value"}}


def test_validation_error_with_field() -> None:
    exc = ValidationError("Invalid format", field="source_ip")
    assert exc.error_code == "VALIDATION_ERROR"
    assert exc.details == {"field": "source_ip"}


def test_validation_error_without_field() -> None:
    assert ValidationError("Invalid").details == {}


def test_duplicate_event() -> None:
    exc = DuplicateEventError("ev-9")
    assert exc.error_code == "DUPLICATE_EVENT"
    assert exc.details == {"event_id": "ev-9"}


def test_window_sealed() -> None:
    exc = WindowSealedError(datetime(2025, 1, 13, 10, 0, tzinfo=UTC))
    assert exc.error_code == "WINDOW_SEALED"
    assert exc.details == {"window_start": "2025-01-13T10:00:00+00:00"}


def test_transient_store_error_merges_details() -> None:
    exc = TransientStoreError("down", store="redis", details={"operation": "seal"})
    assert exc.error_code == "TRANSIENT_STORE_ERROR"
    assert exc.details == {"store": "redis", "operation": "seal"}


def test_ingestion_overloaded_is_transient() -> None:
    exc = IngestionOverloadedError(256)
    assert isinstance(exc, TransientStoreError)
    assert exc.error_code == "INGESTION_OVERLOADED"
    assert exc.details == {"store": "ingestion", "max_in_flight": 256}


def test_requires_manual_review() -> None:
    exc = RequiresManualReview("a1", "s1", 1500, 1000)
    assert exc.error_code == "REQUIRES_MANUAL_REVIEW"
    assert exc.details["net_amount"] == 1500
    assert "manual review" in exc.message


def test_payment_submission_error() -> None:
    exc = PaymentSubmissionError("s1", "card declined")
    assert exc.error_code == "PAYMENT_SUBMISSION_FAILED"
    assert exc.details == {"statement_id": "s1", "reason": "card declined"}


def test_resource_not_found() -> None:
    exc = ResourceNotFoundException("royalty_statement", "s1")
    assert exc.error_code == "RESOURCE_NOT_FOUND"
    assert exc.message == "royalty_statement not found: s1"


def test_invalid_status_transition() -> None:
    exc = InvalidStatusTransitionError("royalty_statement", "s1", "pending", "paid")
    assert exc.error_code == "INVALID_STATUS_TRANSITION"
    assert exc.details["current"] == "pending"
    assert exc.details["target"] == "paid"


def test_statement_already_exists() -> None:
    exc = StatementAlreadyExistsError("a1", "2025-01-12", "2025-01-13", 2)
    assert exc.error_code == "STATEMENT_ALREADY_EXISTS"
    assert exc.details["sequence"] == 2


def test_period_not_closed() -> None:
    exc = PeriodNotClosedError("2025-01-13T00:00:00+00:00", "2025-01-13T00:05:00+00:00")
    assert exc.error_code == "PERIOD_NOT_CLOSED"


def test_sql_not_configured() -> None:
    exc = SqlNotConfiguredException()
    assert exc.error_code == "SERVICE_UNAVAILABLE"
