"""
Progress store: ReconciledProgress rows keyed by (user, source, key).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError

from shared.errors import PersistenceError
from shared.models.domain import ReconciledProgress
from shared.models.enums import ProviderSource
from shared.models.orm import ProgressORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

logger = get_logger(__name__)

_KEY_COLUMNS = ("user_id", "source", "key")


class ProgressStore(ABC):
    @abstractmethod
    async def get(
        self, user_id: str, source: ProviderSource, key: str
    ) -> Optional[ReconciledProgress]:
        pass

    @abstractmethod
    async def insert(self, progress: ReconciledProgress) -> None:
        pass

    @abstractmethod
    async def update(self, progress: ReconciledProgress) -> None:
        pass

    @abstractmethod
    async def upsert_raw(self, progress: ReconciledProgress) -> None:
        """
        Idempotent upsert used when the read half of read-merge-write failed.

        Present fields overwrite (last writer wins); absent fields are left
        alone; playtime and timestamp still only move forward.
        """
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[ReconciledProgress]:
        pass


def _row_values(progress: ReconciledProgress) -> dict[str, Any]:
    values = progress.model_dump()
    values["source"] = progress.source.value
    values["status"] = progress.status.value if progress.status else None
    return values


class SqlProgressStore(ProgressStore):
    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get(
        self, user_id: str, source: ProviderSource, key: str
    ) -> Optional[ReconciledProgress]:
        stmt = select(ProgressORM).where(
            ProgressORM.user_id == user_id,
            ProgressORM.source == source.value,
            ProgressORM.key == key,
        )
        try:
            async with self._db.read_session() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to read progress", str(exc)) from exc
        return ReconciledProgress.model_validate(row) if row else None

    async def insert(self, progress: ReconciledProgress) -> None:
        stmt = pg_insert(ProgressORM).values(**_row_values(progress))
        await self._execute(stmt, "Failed to insert progress")

    async def update(self, progress: ReconciledProgress) -> None:
        values = _row_values(progress)
        stmt = (
            update(ProgressORM)
            .where(
                ProgressORM.user_id == progress.user_id,
                ProgressORM.source == values["source"],
                ProgressORM.key == progress.key,
            )
            .values(**{k: v for k, v in values.items() if k not in _KEY_COLUMNS})
        )
        await self._execute(stmt, "Failed to update progress")

    async def upsert_raw(self, progress: ReconciledProgress) -> None:
        values = _row_values(progress)
        stmt = pg_insert(ProgressORM).values(**values)
        set_: dict[str, Any] = {
            k: stmt.excluded[k]
            for k, v in values.items()
            if v is not None and k not in _KEY_COLUMNS + ("playtime_minutes", "updated_at")
        }
        if progress.playtime_minutes is not None:
            set_["playtime_minutes"] = func.greatest(
                func.coalesce(ProgressORM.playtime_minutes, 0), stmt.excluded.playtime_minutes
            )
        set_["updated_at"] = func.greatest(ProgressORM.updated_at, stmt.excluded.updated_at)
        stmt = stmt.on_conflict_do_update(constraint="uq_provider_progress", set_=set_)
        await self._execute(stmt, "Failed to upsert progress")

    async def list_for_user(self, user_id: str) -> list[ReconciledProgress]:
        stmt = select(ProgressORM).where(ProgressORM.user_id == user_id)
        try:
            async with self._db.read_session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to load progress", str(exc)) from exc
        return [ReconciledProgress.model_validate(r) for r in rows]

    async def _execute(self, stmt: Any, reason: str) -> None:
        try:
            async with self._db.write_session() as session:
                await session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("progress_write_failed", reason=reason, error=str(exc))
            raise PersistenceError(reason, str(exc)) from exc
