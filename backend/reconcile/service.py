"""
Reconciliation service: read, merge, write for each provider observation.

The caller must hold the per-(user, source) sync lease; nothing here locks.
"""
from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Iterable, Optional

from shared.config import Settings, get_settings
from shared.errors import FATAL_ERRORS, CoreError, PersistenceError
from shared.models.domain import ItemError, ProviderSignal, SyncResult
from shared.models.enums import ProviderFeed, ProviderSource
from shared.utils.clock import Clock, utc_now
from shared.utils.logging import get_logger
from shared.utils.metrics import BEST_EFFORT_FAILURES, MERGE_WRITES

from catalog.store import CatalogStore
from providers.base import BaseProvider
from providers.session import ProviderSession
from reconcile.fields import extract_signal
from reconcile.merge import merge_progress, resolve_key
from reconcile.store import ProgressStore

logger = get_logger(__name__)


class WriteOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    RAW_UPSERT = "raw_upsert"


def _raw_title(raw: Any) -> str:
    if isinstance(raw, dict):
        for key in ("name", "Title", "trophyTitleName", "titleName", "title_name"):
            if raw.get(key):
                return str(raw[key])
    return "(untitled)"


class ReconciliationService:
    def __init__(
        self,
        store: ProgressStore,
        catalog: Optional[CatalogStore] = None,
        session: Optional[ProviderSession] = None,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._session = session
        self._settings = settings or get_settings()
        self._clock = clock

    async def _link(self, signal: ProviderSignal) -> Optional[uuid.UUID]:
        if self._catalog is None or not signal.native_id:
            return None
        try:
            return await self._catalog.find_release_id(signal.source, signal.native_id)
        except PersistenceError as exc:
            logger.warning("release_link_failed", source=signal.source.value, error=exc.details)
            return None

    async def reconcile(self, user_id: str, signal: ProviderSignal) -> WriteOutcome:
        """Merge one observation into the stored row; write failures propagate."""
        key = resolve_key(signal)
        release_id = await self._link(signal)
        now = self._clock()

        try:
            existing = await self._store.get(user_id, signal.source, key)
        except PersistenceError as exc:
            logger.warning(
                "progress_read_failed_raw_upsert",
                user_id=user_id,
                source=signal.source.value,
                key=key,
                error=exc.details,
            )
            merged = merge_progress(None, signal, user_id=user_id, key=key, now=now, release_id=release_id)
            await self._store.upsert_raw(merged)
            MERGE_WRITES.labels(source=signal.source.value, op=WriteOutcome.RAW_UPSERT.value).inc()
            return WriteOutcome.RAW_UPSERT

        merged = merge_progress(existing, signal, user_id=user_id, key=key, now=now, release_id=release_id)
        if existing is None:
            await self._store.insert(merged)
            outcome = WriteOutcome.INSERTED
        else:
            await self._store.update(merged)
            outcome = WriteOutcome.UPDATED
        MERGE_WRITES.labels(source=signal.source.value, op=outcome.value).inc()
        return outcome

    async def _sync_items(
        self, user_id: str, feed: ProviderFeed, items: Iterable[Any], result: SyncResult, errors: list[ItemError]
    ) -> int:
        count = 0
        for raw in items:
            count += 1
            try:
                signal = extract_signal(feed, raw)
                outcome = await self.reconcile(user_id, signal)
            except (PersistenceError,) + FATAL_ERRORS:
                raise
            except CoreError as exc:
                result.skipped += 1
                errors.append(ItemError(title=_raw_title(raw), reason=exc.reason, details=exc.details))
                continue
            except Exception as exc:
                logger.error(
                    "sync_item_failed",
                    user_id=user_id,
                    feed=feed.value,
                    title=_raw_title(raw),
                    error=str(exc),
                    exc_info=True,
                )
                result.skipped += 1
                errors.append(
                    ItemError(title=_raw_title(raw), reason="Exception during import", details=str(exc))
                )
                continue
            if outcome == WriteOutcome.INSERTED:
                result.imported += 1
            else:
                result.updated += 1
        return count

    def _finish(self, result: SyncResult, errors: list[ItemError]) -> SyncResult:
        result.error_count = len(errors)
        result.errors = errors[: self._settings.sync_error_limit]
        return result

    async def sync_feed(self, user_id: str, feed: ProviderFeed, items: Iterable[Any]) -> SyncResult:
        """Reconcile a batch of raw items from one feed; stamps the account afterwards."""
        result = SyncResult(source=feed.source)
        errors: list[ItemError] = []
        count = await self._sync_items(user_id, feed, items, result, errors)
        await self._stamp(user_id, feed.source, count, result)
        logger.info(
            "feed_synced",
            user_id=user_id,
            feed=feed.value,
            imported=result.imported,
            updated=result.updated,
            skipped=result.skipped,
        )
        return self._finish(result, errors)

    async def sync_provider(self, user_id: str, provider: BaseProvider) -> SyncResult:
        """Pull every feed the provider exposes and reconcile it."""
        if self._session is None:
            raise RuntimeError("ReconciliationService has no provider session")
        auth = await self._session.authorize(user_id, provider.source)
        feeds = await provider.list_titles(auth)

        result = SyncResult(source=provider.source)
        errors: list[ItemError] = []
        largest = 0
        for feed, items in feeds.items():
            largest = max(largest, await self._sync_items(user_id, feed, items, result, errors))

        await self._stamp(user_id, provider.source, largest, result)
        logger.info(
            "provider_synced",
            user_id=user_id,
            source=provider.source.value,
            imported=result.imported,
            updated=result.updated,
            skipped=result.skipped,
            errors=len(errors),
        )
        return self._finish(result, errors)

    async def _stamp(self, user_id: str, source: ProviderSource, count: int, result: SyncResult) -> None:
        if self._session is None:
            return
        try:
            await self._session.stamp_sync(user_id, source, self._clock(), count)
        except PersistenceError as exc:
            BEST_EFFORT_FAILURES.labels(target="sync_stamp").inc()
            logger.warning("sync_stamp_failed", user_id=user_id, source=source.value, error=exc.details)
            result.warnings.append(f"Failed to update profile sync stamp: {exc.details or exc.reason}")
