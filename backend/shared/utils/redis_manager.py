"""
Redis connection manager for the SaveState core.
Holds score snapshots, cached provider title lists and per-user sync leases.
"""
from __future__ import annotations

import json
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Key namespaces ──────────────────────────────────────────────────────
SNAP_SCORE_KEY = "snap:user:{user_id}:score"
CANDIDATES_KEY = "catalog:{source}:system:{system_id}:titles"
SYNC_LEASE_KEY = "lease:sync:{user_id}:{source}"


def _fmt(template: str, **kwargs: Any) -> str:
    return template.format(**kwargs)


class RedisManager:
    """Manages the async Redis connection pool and provides typed helpers."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._pool: Optional[Redis] = None

    async def connect(self) -> None:
        self._pool = aioredis.from_url(
            self._settings.redis_url_str,
            max_connections=self._settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
        )
        await self._pool.ping()
        logger.info("redis_connected", url=self._settings.redis_url_str)

    async def disconnect(self) -> None:
        if self._pool:
            await self._pool.aclose()
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._pool is None:
            raise RuntimeError("RedisManager not connected. Call connect() first.")
        return self._pool

    # ── Snapshot helpers ────────────────────────────────────────────────
    async def set_snapshot(self, key: str, data: str, ttl_s: int = 300) -> None:
        """Store a JSON snapshot with TTL."""
        await self.client.set(key, data, ex=ttl_s)

    async def get_snapshot(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set_score_snapshot(self, user_id: str, data: str, ttl_s: int) -> None:
        await self.set_snapshot(_fmt(SNAP_SCORE_KEY, user_id=user_id), data, ttl_s)

    async def get_score_snapshot(self, user_id: str) -> Optional[str]:
        return await self.get_snapshot(_fmt(SNAP_SCORE_KEY, user_id=user_id))

    # ── Provider title lists ────────────────────────────────────────────
    async def get_candidates(self, source: str, system_id: int) -> Optional[list[dict[str, Any]]]:
        raw = await self.client.get(_fmt(CANDIDATES_KEY, source=source, system_id=system_id))
        if raw is None:
            return None
        return json.loads(raw)

    async def set_candidates(
        self, source: str, system_id: int, candidates: list[dict[str, Any]], ttl_s: int
    ) -> None:
        key = _fmt(CANDIDATES_KEY, source=source, system_id=system_id)
        await self.client.set(key, json.dumps(candidates), ex=ttl_s)

    # ── Sync leases ─────────────────────────────────────────────────────

    # Lua script: atomically delete only if we hold the lease
    _RELEASE_LEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    redis.call("del", KEYS[1])
    return 1
end
return 0
"""

    async def try_acquire_sync_lease(
        self, user_id: str, source: str, token: str, ttl_s: int
    ) -> bool:
        """Take the per-(user, source) sync lease using SET NX."""
        key = _fmt(SYNC_LEASE_KEY, user_id=user_id, source=source)
        return bool(await self.client.set(key, token, nx=True, ex=ttl_s))

    async def release_sync_lease(self, user_id: str, source: str, token: str) -> bool:
        """Release the lease only if this token still holds it."""
        key = _fmt(SYNC_LEASE_KEY, user_id=user_id, source=source)
        result = await self.client.eval(self._RELEASE_LEASE_SCRIPT, 1, key, token)
        return bool(result)
