"""Presentation-layer dependency injection (composition root).

Provides FastAPI Depends() for the unit of work and application use cases.
All use cases are built from infrastructure implementations here; routes
depend only on these dependencies, not on infra directly. The build_*
helpers are shared with the lifespan and the scheduler script.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from royalty_pipeline.application.interfaces.repositories import IUnitOfWork
from royalty_pipeline.application.interfaces.services import (
    IAggregationStore,
    IEventPublisher,
    IPayoutGateway,
)
from royalty_pipeline.application.services.fraud_analyzer import FraudPolicy
from royalty_pipeline.application.use_cases import (
    AggregateQueryService,
    AggregateRebuilder,
    ArtistStreamStatsService,
    EventTracker,
    PayoutDistributor,
    RoyaltyCalculationEngine,
    StatementService,
    TierProfileService,
    WindowSealingService,
)
from royalty_pipeline.core.config import Settings, get_settings
from royalty_pipeline.infrastructure.persistence.unit_of_work import sqlalchemy_uow_factory

UowFactory = Callable[[], IUnitOfWork]


# ---- Builders (no FastAPI types) ----


def build_event_tracker(
    settings: Settings,
    store: IAggregationStore,
    uow_factory: UowFactory,
    publisher: IEventPublisher | None = None,
) -> EventTracker:
    return EventTracker(
        store,
        uow_factory,
        publisher,
        FraudPolicy.from_settings(settings),
        window_seconds=settings.aggregation_window_seconds,
        grace_seconds=settings.aggregation_grace_seconds,
        max_clock_skew_seconds=settings.max_clock_skew_seconds,
        history_timeout_seconds=settings.history_lookup_timeout_seconds,
        persistence_timeout_seconds=settings.persistence_timeout_seconds,
        increment_max_attempts=settings.increment_max_attempts,
        increment_backoff_seconds=settings.increment_backoff_seconds,
        max_in_flight=settings.ingestion_max_in_flight,
        acquire_timeout_seconds=settings.ingestion_acquire_timeout_seconds,
    )


def build_rebuilder(
    settings: Settings, store: IAggregationStore, uow_factory: UowFactory
) -> AggregateRebuilder:
    return AggregateRebuilder(
        store,
        uow_factory,
        window_seconds=settings.aggregation_window_seconds,
        grace_seconds=settings.aggregation_grace_seconds,
    )


def build_sealing_service(
    settings: Settings, store: IAggregationStore, uow_factory: UowFactory
) -> WindowSealingService:
    return WindowSealingService(
        store,
        uow_factory,
        window_seconds=settings.aggregation_window_seconds,
        grace_seconds=settings.aggregation_grace_seconds,
    )


def build_engine(
    settings: Settings, store: IAggregationStore, uow_factory: UowFactory
) -> RoyaltyCalculationEngine:
    return RoyaltyCalculationEngine(
        uow_factory,
        build_sealing_service(settings, store, uow_factory),
        window_seconds=settings.aggregation_window_seconds,
        grace_seconds=settings.aggregation_grace_seconds,
        currency=settings.currency,
        penalty_per_flagged_play=settings.fraud_penalty_per_flagged_play,
        auto_approve_ceiling=settings.statement_auto_approve_ceiling,
        max_parallel_artists=settings.engine_max_parallel_artists,
    )


def build_distributor(
    settings: Settings, gateway: IPayoutGateway, uow_factory: UowFactory
) -> PayoutDistributor:
    return PayoutDistributor(uow_factory, gateway, max_attempts=settings.payout_max_attempts)


# ---- FastAPI dependencies ----


def get_uow_factory() -> UowFactory:
    """Unit of work factory; entering a unit of work without DATABASE_URL raises 503."""
    return sqlalchemy_uow_factory()


def _app_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return value


def get_aggregation_store(request: Request) -> IAggregationStore:
    return _app_state(request, "aggregation_store")


def get_payout_gateway(request: Request) -> IPayoutGateway:
    return _app_state(request, "payout_gateway")


def get_event_tracker(request: Request) -> EventTracker:
    """Process-wide tracker (owns the in-flight limit); built at startup."""
    return _app_state(request, "event_tracker")


def get_rebuilder(
    store: Annotated[IAggregationStore, Depends(get_aggregation_store)],
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
) -> AggregateRebuilder:
    return build_rebuilder(get_settings(), store, uow_factory)


def get_sealing_service(
    store: Annotated[IAggregationStore, Depends(get_aggregation_store)],
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
) -> WindowSealingService:
    return build_sealing_service(get_settings(), store, uow_factory)


def get_royalty_engine(
    store: Annotated[IAggregationStore, Depends(get_aggregation_store)],
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
) -> RoyaltyCalculationEngine:
    return build_engine(get_settings(), store, uow_factory)


def get_payout_distributor(
    gateway: Annotated[IPayoutGateway, Depends(get_payout_gateway)],
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
) -> PayoutDistributor:
    return build_distributor(get_settings(), gateway, uow_factory)


def get_statement_service(
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
) -> StatementService:
    return StatementService(uow_factory)


def get_tier_profile_service(
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
) -> TierProfileService:
    return TierProfileService(uow_factory)


def get_stats_service(
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
) -> ArtistStreamStatsService:
    return ArtistStreamStatsService(uow_factory)


def get_aggregate_query_service(
    uow_factory: Annotated[UowFactory, Depends(get_uow_factory)],
) -> AggregateQueryService:
    return AggregateQueryService(uow_factory)
