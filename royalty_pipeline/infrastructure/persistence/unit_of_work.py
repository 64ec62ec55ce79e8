"""SQLAlchemy unit of work: one session and transaction exposing every repository.

Use cases take a factory (callable returning a fresh unit of work) so each
operation opens its own transaction:

    async with uow_factory() as uow:
        await uow.stream_events.append(record)

Commits on normal exit and rolls back on exception. Connection-level
database failures surface as TransientStoreError so callers can retry.
"""

from __future__ import annotations

from collections.abc import Callable
from types import TracebackType

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from royalty_pipeline.domain.exceptions import TransientStoreError
from royalty_pipeline.infrastructure.persistence.database import get_session_factory
from royalty_pipeline.infrastructure.persistence.repositories import (
    AggregateBucketRepository,
    PaymentStatusRepository,
    StatementRepository,
    StreamEventRepository,
    TierProfileRepository,
)
from royalty_pipeline.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

_TRANSIENT_ERRORS = (OperationalError, InterfaceError, OSError)


class SqlAlchemyUnitOfWork:
    """IUnitOfWork backed by an AsyncSession."""

    stream_events: StreamEventRepository
    buckets: AggregateBucketRepository
    profiles: TierProfileRepository
    statements: StatementRepository
    payments: PaymentStatusRepository

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("Unit of work is not active")
        return self._session

    async def __aenter__(self) -> SqlAlchemyUnitOfWork:
        factory = self._session_factory or get_session_factory()
        session = factory()
        try:
            await session.begin()
        except _TRANSIENT_ERRORS as e:
            await session.close()
            raise TransientStoreError(
                "Database unavailable", store="postgres", details={"phase": "begin"}
            ) from e
        self._session = session
        self.stream_events = StreamEventRepository(session)
        self.buckets = AggregateBucketRepository(session)
        self.profiles = TierProfileRepository(session)
        self.statements = StatementRepository(session)
        self.payments = PaymentStatusRepository(session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        session = self.session
        self._session = None
        try:
            if exc_type is None:
                await session.commit()
            else:
                await session.rollback()
        except _TRANSIENT_ERRORS as e:
            logger.warning("Unit of work %s failed: %s", "commit" if exc_type is None else "rollback", e)
            if exc_type is None:
                raise TransientStoreError(
                    "Database unavailable", store="postgres", details={"phase": "commit"}
                ) from e
        finally:
            await session.close()
        if isinstance(exc, _TRANSIENT_ERRORS):
            raise TransientStoreError(
                "Database unavailable", store="postgres", details={"phase": "execute"}
            ) from exc


def sqlalchemy_uow_factory(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> Callable[[], SqlAlchemyUnitOfWork]:
    """Return a factory producing a fresh unit of work per call."""

    def _factory() -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(session_factory)

    return _factory
