"""Application lifespan: startup and shutdown.

Single place for all startup/shutdown logic. Used by main.py; no business
logic here, only wiring of infrastructure (Redis client, aggregation
store, event publisher, payout gateway, telemetry, DB engine dispose).
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from royalty_pipeline.api.v1.dependencies import build_event_tracker, build_rebuilder
from royalty_pipeline.core.config import get_settings
from royalty_pipeline.domain.exceptions import TransientStoreError
from royalty_pipeline.infrastructure.aggregation import (
    create_aggregation_store,
    create_redis_client,
)
from royalty_pipeline.infrastructure.messaging import StreamEventPublisher
from royalty_pipeline.infrastructure.payments import create_payout_gateway
from royalty_pipeline.infrastructure.persistence.unit_of_work import sqlalchemy_uow_factory

logger = logging.getLogger(__name__)


@asynccontextmanager
async def create_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run startup then yield; on exit run shutdown.

    Startup order: telemetry (if enabled), Redis client (if enabled),
    aggregation store, publisher, payout gateway, event tracker, open
    window recovery (memory backend with SQL configured). Shutdown order:
    payout gateway close, Redis close, telemetry shutdown, SQL engine dispose.
    """
    settings = get_settings()

    # ---- Startup ----
    telemetry = None
    if settings.telemetry_enabled:
        from royalty_pipeline.shared.telemetry.telemetry import TelemetryConfig, set_telemetry

        telemetry = TelemetryConfig(
            service_name=settings.app_name,
            service_version=settings.app_version,
            enabled=True,
            environment=settings.telemetry_environment,
        )
        telemetry.setup_telemetry(
            exporter_type=settings.telemetry_exporter,
            otlp_endpoint=settings.telemetry_otlp_endpoint,
            sample_rate=settings.telemetry_sample_rate,
        )
        set_telemetry(telemetry)
        telemetry.instrument_fastapi(app)
        telemetry.instrument_logging()
        if settings.sql_configured:
            from royalty_pipeline.infrastructure.persistence import database

            database._ensure_engine()
            if database.engine is not None:
                telemetry.instrument_sqlalchemy(database.engine)
        logger.info("Telemetry initialized")

    redis_client = create_redis_client(settings) if settings.redis_enabled else None
    if redis_client is not None and telemetry is not None:
        telemetry.instrument_redis()
    app.state.redis_client = redis_client

    store = create_aggregation_store(settings, redis_client)
    publisher = StreamEventPublisher(redis_client)
    app.state.aggregation_store = store
    app.state.event_publisher = publisher
    app.state.payout_gateway = create_payout_gateway(settings)

    uow_factory = sqlalchemy_uow_factory()
    app.state.event_tracker = build_event_tracker(settings, store, uow_factory, publisher)

    if settings.aggregation_backend == "memory" and settings.sql_configured:
        # In-process counters are lost on restart; replay the log for windows still open.
        try:
            results = await build_rebuilder(settings, store, uow_factory).recover_open_windows()
            logger.info("Recovered %d open aggregation windows", len(results))
        except TransientStoreError as e:
            logger.warning("Open window recovery skipped: %s", e.message)

    yield

    # ---- Shutdown ----
    gateway = getattr(app.state, "payout_gateway", None)
    if gateway is not None and hasattr(gateway, "aclose"):
        await gateway.aclose()
        logger.info("Payout gateway closed")

    if getattr(app.state, "redis_client", None) is not None:
        await app.state.redis_client.aclose()
        app.state.redis_client = None
        logger.info("Redis client closed")

    from royalty_pipeline.shared.telemetry.telemetry import get_telemetry

    telemetry_instance = get_telemetry()
    if telemetry_instance is not None:
        telemetry_instance.shutdown()
        logger.info("Telemetry shutdown complete")

    from royalty_pipeline.infrastructure.persistence import database

    if database.engine is not None:
        await database.dispose_engine()
        logger.info("Database engine disposed")
