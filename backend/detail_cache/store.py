"""
Detail cache store: one snapshot of normalized items per (user, release, source).
"""
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError

from shared.errors import PersistenceError
from shared.models.domain import CachedDetailSet, DetailItem
from shared.models.enums import ProviderSource
from shared.models.orm import DetailCacheORM
from shared.utils.database import DatabaseManager


class DetailCacheStore(ABC):
    @abstractmethod
    async def get(
        self, user_id: str, release_id: uuid.UUID, source: ProviderSource
    ) -> Optional[CachedDetailSet]:
        pass

    @abstractmethod
    async def put(self, snapshot: CachedDetailSet) -> None:
        """Replace the snapshot for the snapshot's key."""
        pass


class SqlDetailCacheStore(DetailCacheStore):
    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get(
        self, user_id: str, release_id: uuid.UUID, source: ProviderSource
    ) -> Optional[CachedDetailSet]:
        stmt = select(DetailCacheORM).where(
            DetailCacheORM.user_id == user_id,
            DetailCacheORM.release_id == release_id,
            DetailCacheORM.source == source.value,
        )
        try:
            async with self._db.read_session() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to read detail cache", str(exc)) from exc
        if row is None:
            return None
        return CachedDetailSet(
            user_id=row.user_id,
            release_id=row.release_id,
            source=ProviderSource(row.source),
            fetched_at=row.fetched_at,
            items=[DetailItem.model_validate(item) for item in row.payload or []],
        )

    async def put(self, snapshot: CachedDetailSet) -> None:
        payload = [item.model_dump(mode="json") for item in snapshot.items]
        stmt = pg_insert(DetailCacheORM).values(
            user_id=snapshot.user_id,
            release_id=snapshot.release_id,
            source=snapshot.source.value,
            payload=payload,
            fetched_at=snapshot.fetched_at,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_detail_cache",
            set_={"payload": stmt.excluded.payload, "fetched_at": stmt.excluded.fetched_at},
        )
        try:
            async with self._db.write_session() as session:
                await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to write detail cache", str(exc)) from exc
