"""API v1 router aggregation.

Includes all endpoint modules with consistent prefix and tags. All routes
use dependencies from royalty_pipeline.api.v1.dependencies (no manual
repo/service construction).
"""

from fastapi import APIRouter

from royalty_pipeline.api.v1.endpoints import (
    aggregates,
    artists,
    health,
    payouts,
    royalty_runs,
    statements,
    stream_events,
    windows,
)

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(
    stream_events.router, prefix="/stream-events", tags=["stream-events"]
)
api_router.include_router(aggregates.router, prefix="/aggregates", tags=["aggregates"])
api_router.include_router(artists.router, prefix="/artists", tags=["artists"])
api_router.include_router(windows.router, prefix="/windows", tags=["windows"])
api_router.include_router(
    royalty_runs.router, prefix="/royalty-runs", tags=["royalty-runs"]
)
api_router.include_router(statements.router, prefix="/statements", tags=["statements"])
api_router.include_router(payouts.router, prefix="/payouts", tags=["payouts"])
