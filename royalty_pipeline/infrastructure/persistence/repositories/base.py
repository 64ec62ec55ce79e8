"""Base repository: primary-key lookup, create and pagination helpers."""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from royalty_pipeline.infrastructure.persistence.database import Base


ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository with get_by_pk, get_all and create.

    Subclasses map ORM rows to application DTOs; nothing above the
    repository layer sees a model instance.
    """

    def __init__(self, db: AsyncSession, model: type[ModelType]) -> None:
        self.db = db
        self.model = model

    async def get_by_pk(self, pk: Any) -> ModelType | None:
        """Return a single record by primary key, or None."""
        return await self.db.get(self.model, pk)

    async def get_all(self, skip: int = 0, limit: int = 100) -> list[ModelType]:
        """Return records with pagination."""
        result = await self.db.execute(select(self.model).offset(skip).limit(limit))
        return list(result.scalars().all())

    async def create(self, obj: ModelType) -> ModelType:
        """Persist a new record and run _on_after_create hook."""
        self.db.add(obj)
        await self.db.flush()
        await self.db.refresh(obj)
        await self._on_after_create(obj)
        return obj

    async def _on_after_create(self, obj: ModelType) -> None:
        """Override in subclasses to emit follow-up rows."""
