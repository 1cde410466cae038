"""
Catalog store: canonical releases (read-only) and provider mappings.
"""
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError

from shared.errors import PersistenceError
from shared.models.domain import CanonicalRelease, ProviderMapping
from shared.models.enums import ProviderSource
from shared.models.orm import ReleaseExternalIdORM, ReleaseORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class CatalogStore(ABC):
    """Read/write contract the matcher needs from the catalog."""

    @abstractmethod
    async def get_release(self, release_id: uuid.UUID) -> Optional[CanonicalRelease]:
        pass

    @abstractmethod
    async def list_releases(
        self, after: Optional[uuid.UUID], limit: int
    ) -> list[CanonicalRelease]:
        """Releases with id > after, ordered by id ascending."""
        pass

    @abstractmethod
    async def get_mapping(
        self, release_id: uuid.UUID, source: ProviderSource
    ) -> Optional[ProviderMapping]:
        pass

    @abstractmethod
    async def insert_mapping(self, mapping: ProviderMapping) -> None:
        """Insert once; an existing (release, source) row is left untouched."""
        pass

    @abstractmethod
    async def find_release_id(
        self, source: ProviderSource, external_id: str
    ) -> Optional[uuid.UUID]:
        """Reverse lookup used to link synced progress rows to a release."""
        pass


class SqlCatalogStore(CatalogStore):
    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get_release(self, release_id: uuid.UUID) -> Optional[CanonicalRelease]:
        async with self._db.read_session() as session:
            row = await session.get(ReleaseORM, release_id)
        return CanonicalRelease.model_validate(row) if row else None

    async def list_releases(
        self, after: Optional[uuid.UUID], limit: int
    ) -> list[CanonicalRelease]:
        stmt = select(ReleaseORM).order_by(ReleaseORM.id).limit(limit)
        if after is not None:
            stmt = stmt.where(ReleaseORM.id > after)
        async with self._db.read_session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [CanonicalRelease.model_validate(r) for r in rows]

    async def get_mapping(
        self, release_id: uuid.UUID, source: ProviderSource
    ) -> Optional[ProviderMapping]:
        stmt = select(ReleaseExternalIdORM).where(
            ReleaseExternalIdORM.release_id == release_id,
            ReleaseExternalIdORM.source == source.value,
        )
        async with self._db.read_session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        return ProviderMapping.model_validate(row) if row else None

    async def insert_mapping(self, mapping: ProviderMapping) -> None:
        stmt = pg_insert(ReleaseExternalIdORM).values(
            release_id=mapping.release_id,
            source=mapping.source.value,
            external_id=mapping.external_id,
            external_title=mapping.external_title,
        ).on_conflict_do_nothing(constraint="uq_release_external_id")
        try:
            async with self._db.write_session() as session:
                await session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("mapping_insert_failed", release_id=str(mapping.release_id), error=str(exc))
            raise PersistenceError("Failed to save mapping", str(exc)) from exc

    async def find_release_id(
        self, source: ProviderSource, external_id: str
    ) -> Optional[uuid.UUID]:
        stmt = (
            select(ReleaseExternalIdORM.release_id)
            .where(
                ReleaseExternalIdORM.source == source.value,
                ReleaseExternalIdORM.external_id == external_id,
            )
            .limit(1)
        )
        try:
            async with self._db.read_session() as session:
                return (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to look up release", str(exc)) from exc
