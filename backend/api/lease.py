"""
Per-(user, source) sync lease.

The reconciliation merge is not atomic across its read and write, so the API
lets only one sync per user and source run at a time.
"""
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.exceptions import RedisError

from shared.errors import SyncInProgress
from shared.models.enums import ProviderSource
from shared.utils.logging import get_logger
from shared.utils.redis_manager import RedisManager

logger = get_logger(__name__)


@asynccontextmanager
async def sync_lease(
    redis: RedisManager, user_id: str, source: ProviderSource, ttl_s: int
) -> AsyncIterator[str]:
    token = uuid.uuid4().hex
    if not await redis.try_acquire_sync_lease(user_id, source.value, token, ttl_s):
        raise SyncInProgress(f"A {source.value} sync is already running")
    try:
        yield token
    finally:
        try:
            await redis.release_sync_lease(user_id, source.value, token)
        except RedisError as exc:
            # Lease expires on its own after ttl_s.
            logger.warning("sync_lease_release_failed", user_id=user_id, source=source.value, error=str(exc))
