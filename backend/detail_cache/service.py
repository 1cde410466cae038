"""
Detail cache service.

A cached set is served while it is younger than the freshness TTL; older
sets, misses and forced refreshes go to the provider. Storage problems never
fail a request: a failed read counts as a miss and a failed write is
reported as a warning next to the freshly fetched items.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Optional

from shared.config import Settings, get_settings
from shared.errors import PersistenceError
from shared.models.domain import CachedDetailSet, DetailItem, DetailResult
from shared.models.enums import ProviderSource
from shared.utils.clock import Clock, utc_now
from shared.utils.logging import get_logger
from shared.utils.metrics import BEST_EFFORT_FAILURES, DETAIL_CACHE_LOOKUPS

from detail_cache.fetcher import DetailFetcher
from detail_cache.normalize import normalize_items
from detail_cache.store import DetailCacheStore

logger = get_logger(__name__)


def is_fresh(fetched_at: datetime, now: datetime, ttl: timedelta) -> bool:
    return now - fetched_at < ttl


def _result(
    release_id: uuid.UUID,
    source: ProviderSource,
    items: list[DetailItem],
    fetched_at: datetime,
    *,
    cached: bool,
    warning: Optional[str] = None,
) -> DetailResult:
    return DetailResult(
        release_id=release_id,
        source=source,
        cached=cached,
        fetched_at=fetched_at,
        items=items,
        earned=sum(1 for i in items if i.earned),
        total=len(items),
        warning=warning,
    )


class DetailCache:
    def __init__(
        self,
        store: DetailCacheStore,
        fetcher: DetailFetcher,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._settings = settings or get_settings()
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self._settings.detail_cache_ttl_s)

    async def _read(
        self, user_id: str, release_id: uuid.UUID, source: ProviderSource
    ) -> Optional[CachedDetailSet]:
        try:
            return await self._store.get(user_id, release_id, source)
        except PersistenceError as exc:
            logger.warning(
                "detail_cache_read_failed",
                user_id=user_id,
                release_id=str(release_id),
                source=source.value,
                error=exc.details,
            )
            return None

    async def get_or_fetch(
        self,
        user_id: str,
        release_id: uuid.UUID,
        source: ProviderSource,
        *,
        force: bool = False,
    ) -> DetailResult:
        now = self._clock()
        if not force:
            snapshot = await self._read(user_id, release_id, source)
            if snapshot is not None and is_fresh(snapshot.fetched_at, now, self.ttl):
                DETAIL_CACHE_LOOKUPS.labels(source=source.value, result="hit").inc()
                return _result(release_id, source, snapshot.items, snapshot.fetched_at, cached=True)
            DETAIL_CACHE_LOOKUPS.labels(
                source=source.value, result="stale" if snapshot is not None else "miss"
            ).inc()
        else:
            DETAIL_CACHE_LOOKUPS.labels(source=source.value, result="forced").inc()

        raw = await self._fetcher.fetch(user_id, release_id, source)
        items = normalize_items(source, raw)

        warning = None
        try:
            await self._store.put(
                CachedDetailSet(
                    user_id=user_id,
                    release_id=release_id,
                    source=source,
                    fetched_at=now,
                    items=items,
                )
            )
        except PersistenceError as exc:
            BEST_EFFORT_FAILURES.labels(target="detail_cache").inc()
            logger.warning(
                "detail_cache_write_failed",
                user_id=user_id,
                release_id=str(release_id),
                source=source.value,
                error=exc.details,
            )
            warning = f"Failed to cache details: {exc.details or exc.reason}"

        logger.info(
            "details_fetched",
            user_id=user_id,
            release_id=str(release_id),
            source=source.value,
            items=len(items),
        )
        return _result(release_id, source, items, now, cached=False, warning=warning)
