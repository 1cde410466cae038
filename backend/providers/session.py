"""
Provider session collaborator.

The core only asks "give me a valid authorization for this call". How the
credential was obtained (OAuth, NPSSO exchange, pasted API key) is handled
outside the core; here it is simply read from the linked-account row.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from shared.errors import MissingCredential, PersistenceError
from shared.models.enums import ProviderSource
from shared.models.orm import ProviderCredentialORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

from providers.base import ProviderAuth

logger = get_logger(__name__)


class ProviderSession(ABC):
    @abstractmethod
    async def authorize(self, user_id: str, source: ProviderSource) -> ProviderAuth:
        """Raises MissingCredential when the provider is not linked."""
        pass

    @abstractmethod
    async def stamp_sync(
        self, user_id: str, source: ProviderSource, synced_at: datetime, count: int
    ) -> None:
        """Record when the account was last synced and how many titles it returned."""
        pass


class StoredCredentialSession(ProviderSession):
    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def authorize(self, user_id: str, source: ProviderSource) -> ProviderAuth:
        stmt = select(ProviderCredentialORM).where(
            ProviderCredentialORM.user_id == user_id,
            ProviderCredentialORM.source == source.value,
        )
        async with self._db.read_session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise MissingCredential(source.value)

        credential = row.credential or {}
        account = str(credential.get("account") or "").strip()
        if not account:
            raise MissingCredential(source.value, "linked credential has no account id")
        return ProviderAuth(
            source=source,
            user_id=user_id,
            account=account,
            token=str(credential.get("token") or ""),
        )

    async def stamp_sync(
        self, user_id: str, source: ProviderSource, synced_at: datetime, count: int
    ) -> None:
        stmt = (
            update(ProviderCredentialORM)
            .where(
                ProviderCredentialORM.user_id == user_id,
                ProviderCredentialORM.source == source.value,
            )
            .values(last_synced_at=synced_at, last_sync_count=count)
        )
        try:
            async with self._db.write_session() as session:
                await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to stamp sync", str(exc)) from exc
