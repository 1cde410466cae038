"""
Score service: loads a user's rows and bonus, runs the pure engine, and keeps
a Redis snapshot of the last breakdown for fast reads.
"""
from __future__ import annotations

from typing import Optional

from pydantic import ValidationError
from redis.exceptions import RedisError

from shared.config import Settings, get_settings
from shared.models.domain import ScoreBreakdown
from shared.utils.logging import get_logger
from shared.utils.metrics import BEST_EFFORT_FAILURES, SCORE_COMPUTE, atrack_latency
from shared.utils.redis_manager import RedisManager

from reconcile.store import ProgressStore
from scoring.config import ScoringSettings, get_scoring_settings
from scoring.engine import compute_score
from scoring.store import BonusStore

logger = get_logger(__name__)


class ScoreService:
    def __init__(
        self,
        progress: ProgressStore,
        bonus: BonusStore,
        redis: Optional[RedisManager] = None,
        scoring: Optional[ScoringSettings] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._progress = progress
        self._bonus = bonus
        self._redis = redis
        self._scoring = scoring or get_scoring_settings()
        self._settings = settings or get_settings()

    async def compute(self, user_id: str) -> ScoreBreakdown:
        async with atrack_latency(SCORE_COMPUTE):
            rows = await self._progress.list_for_user(user_id)
            bonus = await self._bonus.get_bonus(user_id)
            breakdown = compute_score(rows, bonus, self._scoring)
        logger.info(
            "score_computed",
            user_id=user_id,
            rows=len(rows),
            score=breakdown.score_total,
            confidence=breakdown.confidence,
        )
        return breakdown

    async def persist_snapshot(self, user_id: str, breakdown: ScoreBreakdown) -> Optional[str]:
        """Best-effort; returns a warning instead of raising when Redis is unavailable."""
        if self._redis is None:
            return "Score snapshot not saved: cache unavailable"
        try:
            await self._redis.set_score_snapshot(
                user_id, breakdown.model_dump_json(), self._settings.score_snapshot_ttl_s
            )
        except RedisError as exc:
            BEST_EFFORT_FAILURES.labels(target="score_snapshot").inc()
            logger.warning("score_snapshot_write_failed", user_id=user_id, error=str(exc))
            return f"Score snapshot not saved: {exc}"
        return None

    async def get_snapshot(self, user_id: str) -> Optional[ScoreBreakdown]:
        if self._redis is None:
            return None
        try:
            raw = await self._redis.get_score_snapshot(user_id)
        except RedisError as exc:
            logger.warning("score_snapshot_read_failed", user_id=user_id, error=str(exc))
            return None
        if raw is None:
            return None
        try:
            return ScoreBreakdown.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("score_snapshot_invalid", user_id=user_id, error=str(exc))
            return None
