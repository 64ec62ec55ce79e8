"""Centralized exception handlers for the FastAPI app.

Register with register_exception_handlers(app). Maps domain and framework
exceptions to HTTP responses.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from royalty_pipeline.core.config import get_settings
from royalty_pipeline.domain.exceptions import RoyaltyPipelineException

logger = logging.getLogger(__name__)

# Map domain error_code to HTTP status when applicable
_ERROR_CODE_STATUS: dict[str, int] = {
    "VALIDATION_ERROR": 400,
    "RESOURCE_NOT_FOUND": 404,
    "DUPLICATE_EVENT": 409,
    "WINDOW_SEALED": 409,
    "WINDOW_OPEN": 409,
    "INVALID_STATUS_TRANSITION": 409,
    "STATEMENT_ALREADY_EXISTS": 409,
    "PERIOD_NOT_CLOSED": 409,
    "REQUIRES_MANUAL_REVIEW": 409,
    "PAYMENT_SUBMISSION_FAILED": 502,
    "TRANSIENT_STORE_ERROR": 503,
    "INGESTION_OVERLOADED": 503,
    "SERVICE_UNAVAILABLE": 503,
}

# Clients may retry these after a short delay.
_RETRY_AFTER_SECONDS: dict[str, str] = {
    "TRANSIENT_STORE_ERROR": "1",
    "INGESTION_OVERLOADED": "1",
}


def _domain_exception_handler(
    request: Request, exc: RoyaltyPipelineException
) -> JSONResponse:
    """Return JSON from RoyaltyPipelineException.to_dict() with appropriate status code."""
    status = _ERROR_CODE_STATUS.get(exc.error_code, 400)
    if status >= 500:
        logger.warning("%s on %s: %s", exc.error_code, request.url.path, exc.message)
    headers = None
    retry_after = _RETRY_AFTER_SECONDS.get(exc.error_code)
    if retry_after is not None:
        headers = {"Retry-After": retry_after}
    return JSONResponse(status_code=status, content=exc.to_dict(), headers=headers)


def _validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 422 with validation error details."""
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": jsonable_errors(exc.errors()),
        },
    )


def jsonable_errors(errors: Any) -> list[dict[str, Any]]:
    """Drop non-serializable ctx values (e.g. exception instances) from pydantic errors."""
    cleaned = []
    for error in errors:
        item = dict(error)
        if "ctx" in item:
            item["ctx"] = {k: str(v) for k, v in item["ctx"].items()}
        cleaned.append(item)
    return cleaned


def _http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Return JSON for Starlette HTTP exceptions (status + detail)."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "HTTP_ERROR", "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def _generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return 500; include detail only when debug is True."""
    logger.exception("Unhandled exception: %s", exc)
    settings = get_settings()
    detail: Any = str(exc) if settings.debug else "Internal server error"
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "message": detail},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app.

    Call once after creating the app. Handlers: RoyaltyPipelineException (and
    subclasses), RequestValidationError, StarletteHTTPException, generic Exception.
    """
    app.add_exception_handler(RoyaltyPipelineException, _domain_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _generic_exception_handler)
