"""
Async PostgreSQL access for the core stores, on the SQLAlchemy 2.0 async engine.

Stores never hold a session across calls: each read or write opens one
from the factory and closes it before returning.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class DatabaseManager:
    """Owns the async engine; hands out read-only and transactional sessions."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker[AsyncSession]] = None

    async def connect(self) -> None:
        s = self._settings
        self._engine = create_async_engine(
            s.database_url_str,
            pool_size=s.db_pool_min,
            max_overflow=s.db_pool_max - s.db_pool_min,
            pool_pre_ping=True,
            echo=s.debug,
            connect_args={"command_timeout": s.db_command_timeout},
        )
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False)
        logger.info("database_connected", url=s.database_url_safe_log)

    async def disconnect(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = self._sessions = None
            logger.info("database_disconnected")

    def _open(self) -> AsyncSession:
        if self._sessions is None:
            raise RuntimeError("DatabaseManager not connected. Call connect() first.")
        return self._sessions()

    @asynccontextmanager
    async def read_session(self) -> AsyncIterator[AsyncSession]:
        """Session for reads; never commits."""
        async with self._open() as session:
            yield session

    @asynccontextmanager
    async def write_session(self) -> AsyncIterator[AsyncSession]:
        """Transactional session: commits on success, rolls back on error."""
        async with self._open() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
