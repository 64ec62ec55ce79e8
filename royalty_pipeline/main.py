"""FastAPI application entry point.

Wiring only: lifespan, exception handlers, middleware, routers, /metrics.
No business logic here. See royalty_pipeline.core.lifespan and
royalty_pipeline.core.exception_handlers.

Settings are loaded inside create_app() so that tests can set env (and optionally
clear get_settings cache) before importing or calling create_app().
"""

from fastapi import FastAPI
from prometheus_client import make_asgi_app
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from royalty_pipeline.api.v1 import api_router
from royalty_pipeline.core.config import get_settings
from royalty_pipeline.core.exception_handlers import register_exception_handlers
from royalty_pipeline.core.lifespan import create_lifespan
from royalty_pipeline.core.limiter import limiter
from royalty_pipeline.middleware import RequestIDMiddleware, TimeoutMiddleware
from royalty_pipeline.shared.telemetry.logging import setup_logging


def create_app() -> FastAPI:
    """Build and return the FastAPI application. Settings are resolved here (deferred from import)."""
    settings = get_settings()
    setup_logging()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=create_lifespan,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    register_exception_handlers(app)

    # Middleware: first added = innermost. Order (outer to inner): request ID, timeout.
    app.add_middleware(
        TimeoutMiddleware,
        timeout_seconds=settings.request_timeout_seconds,
        exempt_paths=("/api/v1/royalty-runs", "/metrics"),
    )
    app.add_middleware(RequestIDMiddleware, header_name=settings.request_id_header)

    app.include_router(api_router, prefix="/api/v1")
    app.mount("/metrics", make_asgi_app())

    return app


app = create_app()
