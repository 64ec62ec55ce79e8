"""Health check endpoints: liveness and readiness (database + Redis)."""

import logging

import redis.asyncio as redis
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from royalty_pipeline.core.config import get_settings
from royalty_pipeline.infrastructure.persistence.database import get_session_factory
from royalty_pipeline.schemas.health import (
    HealthResponse,
    ReadinessErrorResponse,
    ReadinessResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Return simple ok status for liveness."""
    return HealthResponse()


async def _check_database() -> str:
    if not get_settings().sql_configured:
        return "not_configured"
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Readiness: database check failed: %s", e)
        return "unavailable"
    return "ok"


async def _check_redis(request: Request) -> str:
    client = getattr(request.app.state, "redis_client", None)
    if client is None:
        return "disabled"
    try:
        await client.ping()
    except (redis.RedisError, OSError) as e:
        logger.warning("Readiness: Redis check failed: %s", e)
        return "unavailable"
    return "ok"


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"description": "A dependency is down", "model": ReadinessErrorResponse}},
)
async def readiness_check(request: Request) -> ReadinessResponse | JSONResponse:
    """Return 200 when the database (if configured) and Redis (if enabled) answer."""
    checks = {"database": await _check_database(), "redis": await _check_redis(request)}
    failing = [name for name, state in checks.items() if state == "unavailable"]
    if not failing:
        return ReadinessResponse(checks=checks)
    return JSONResponse(
        status_code=503,
        content=ReadinessErrorResponse(
            message=f"Unavailable: {', '.join(failing)}", checks=checks
        ).model_dump(),
    )
