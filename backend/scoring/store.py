"""
Bonus input store: the user's self-reported era history.
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from sqlalchemy.exc import SQLAlchemyError

from shared.errors import PersistenceError
from shared.models.domain import BonusInput
from shared.models.orm import EraHistoryORM
from shared.utils.database import DatabaseManager


class BonusStore(ABC):
    @abstractmethod
    async def get_bonus(self, user_id: str) -> BonusInput:
        """Empty BonusInput when the user never supplied one."""
        pass


class SqlBonusStore(BonusStore):
    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get_bonus(self, user_id: str) -> BonusInput:
        try:
            async with self._db.read_session() as session:
                row = await session.get(EraHistoryORM, user_id)
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to load era history", str(exc)) from exc
        if row is None:
            return BonusInput()
        return BonusInput(
            bonus_points=row.bonus_points or 0,
            confidence_bonus=row.confidence_bonus or 0,
            eras=[str(e) for e in row.eras or []],
        )
