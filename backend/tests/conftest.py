"""
In-memory stand-ins for the stores, session and providers, so the core
services can be exercised without Postgres, Redis or provider APIs.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import pytest

from shared.errors import MissingCredential, PersistenceError, UpstreamUnavailable
from shared.models.domain import (
    BonusInput,
    CachedDetailSet,
    CanonicalRelease,
    Candidate,
    ProviderMapping,
    ReconciledProgress,
)
from shared.models.enums import ProviderFeed, ProviderSource

from catalog.store import CatalogStore
from detail_cache.fetcher import DetailFetcher
from detail_cache.store import DetailCacheStore
from providers.base import BaseProvider, ProviderAuth, RawItem
from providers.session import ProviderSession
from reconcile.store import ProgressStore
from scoring.store import BonusStore

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def release_id(n: int) -> uuid.UUID:
    """Ids that sort in creation order."""
    return uuid.UUID(int=n)


def make_release(n: int, title: str, platform: str = "SNES") -> CanonicalRelease:
    return CanonicalRelease(id=release_id(n), display_title=title, platform_name=platform)


# ── Catalog ─────────────────────────────────────────────────────────────

class FakeCatalogStore(CatalogStore):
    def __init__(self, releases: Optional[list[CanonicalRelease]] = None) -> None:
        self.releases = {r.id: r for r in releases or []}
        self.mappings: dict[tuple[uuid.UUID, ProviderSource], ProviderMapping] = {}
        self.inserts = 0

    async def get_release(self, release_id: uuid.UUID) -> Optional[CanonicalRelease]:
        return self.releases.get(release_id)

    async def list_releases(self, after: Optional[uuid.UUID], limit: int) -> list[CanonicalRelease]:
        ordered = sorted(self.releases.values(), key=lambda r: r.id)
        if after is not None:
            ordered = [r for r in ordered if r.id > after]
        return ordered[:limit]

    async def get_mapping(self, release_id: uuid.UUID, source: ProviderSource) -> Optional[ProviderMapping]:
        return self.mappings.get((release_id, source))

    async def insert_mapping(self, mapping: ProviderMapping) -> None:
        self.inserts += 1
        self.mappings.setdefault((mapping.release_id, mapping.source), mapping)

    async def find_release_id(self, source: ProviderSource, external_id: str) -> Optional[uuid.UUID]:
        for (rid, src), mapping in self.mappings.items():
            if src == source and mapping.external_id == external_id:
                return rid
        return None


# ── Providers ───────────────────────────────────────────────────────────

class FakeProvider(BaseProvider):
    """Canned responses; search calls listed in `fail_calls` (1-based) raise."""

    def __init__(
        self,
        source: ProviderSource = ProviderSource.RETROACHIEVEMENTS,
        candidates: Optional[dict[int, list[Candidate]]] = None,
        feeds: Optional[dict[ProviderFeed, list[RawItem]]] = None,
        details: Optional[list[RawItem]] = None,
        fail_calls: Optional[set[int]] = None,
        needs_user_auth: bool = False,
    ) -> None:
        self.source = source
        self.needs_user_auth = needs_user_auth
        self.search_auths: list[Optional[ProviderAuth]] = []
        self._candidates = candidates or {}
        self._feeds = feeds or {}
        self._details = details or []
        self._fail_calls = fail_calls or set()
        self.search_calls = 0
        self.detail_calls: list[str] = []

    async def start(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def list_titles(self, auth: ProviderAuth) -> dict[ProviderFeed, list[RawItem]]:
        return self._feeds

    async def fetch_details(self, auth: ProviderAuth, native_id: str) -> list[RawItem]:
        self.detail_calls.append(native_id)
        return list(self._details)

    @property
    def search_needs_user_auth(self) -> bool:
        return self.needs_user_auth

    async def search_titles(self, system_id: int, auth: Optional[ProviderAuth] = None) -> list[Candidate]:
        self.search_calls += 1
        self.search_auths.append(auth)
        if self.search_calls in self._fail_calls:
            raise UpstreamUnavailable(f"{self.source.value} request failed", "HTTP 503")
        return list(self._candidates.get(system_id, []))


class FakeSession(ProviderSession):
    def __init__(self, linked: Optional[set[ProviderSource]] = None, fail_stamp: bool = False) -> None:
        self.linked = linked if linked is not None else set(ProviderSource)
        self.fail_stamp = fail_stamp
        self.stamps: list[tuple[str, ProviderSource, datetime, int]] = []
        self.authorize_calls = 0

    async def authorize(self, user_id: str, source: ProviderSource) -> ProviderAuth:
        self.authorize_calls += 1
        if source not in self.linked:
            raise MissingCredential(source.value)
        return ProviderAuth(source=source, user_id=user_id, account=f"{user_id}-account", token="tok")

    async def stamp_sync(self, user_id: str, source: ProviderSource, synced_at: datetime, count: int) -> None:
        if self.fail_stamp:
            raise PersistenceError("Failed to stamp sync", "connection reset")
        self.stamps.append((user_id, source, synced_at, count))


# ── Progress ────────────────────────────────────────────────────────────

class FakeProgressStore(ProgressStore):
    def __init__(self) -> None:
        self.rows: dict[tuple[str, ProviderSource, str], ReconciledProgress] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.raw_upserts: list[ReconciledProgress] = []

    def _key(self, p: ReconciledProgress) -> tuple[str, ProviderSource, str]:
        return (p.user_id, p.source, p.key)

    def _check_write(self) -> None:
        if self.fail_writes:
            raise PersistenceError("Failed to write progress", "disk full")

    async def get(self, user_id: str, source: ProviderSource, key: str) -> Optional[ReconciledProgress]:
        if self.fail_reads:
            raise PersistenceError("Failed to read progress", "timeout")
        return self.rows.get((user_id, source, key))

    async def insert(self, progress: ReconciledProgress) -> None:
        self._check_write()
        self.rows[self._key(progress)] = progress

    async def update(self, progress: ReconciledProgress) -> None:
        self._check_write()
        self.rows[self._key(progress)] = progress

    async def upsert_raw(self, progress: ReconciledProgress) -> None:
        self._check_write()
        self.raw_upserts.append(progress)
        self.rows[self._key(progress)] = progress

    async def list_for_user(self, user_id: str) -> list[ReconciledProgress]:
        return [p for (uid, _, _), p in self.rows.items() if uid == user_id]


# ── Detail cache ────────────────────────────────────────────────────────

class FakeDetailStore(DetailCacheStore):
    def __init__(self) -> None:
        self.snapshots: dict[tuple[str, uuid.UUID, ProviderSource], CachedDetailSet] = {}
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, user_id: str, release_id: uuid.UUID, source: ProviderSource) -> Optional[CachedDetailSet]:
        if self.fail_reads:
            raise PersistenceError("Failed to read detail cache", "timeout")
        return self.snapshots.get((user_id, release_id, source))

    async def put(self, snapshot: CachedDetailSet) -> None:
        if self.fail_writes:
            raise PersistenceError("Failed to write detail cache", "disk full")
        self.snapshots[(snapshot.user_id, snapshot.release_id, snapshot.source)] = snapshot


class FakeFetcher(DetailFetcher):
    def __init__(self, items: Optional[list[RawItem]] = None) -> None:
        self.items = items or []
        self.calls = 0

    async def fetch(self, user_id: str, release_id: uuid.UUID, source: ProviderSource) -> list[RawItem]:
        self.calls += 1
        return list(self.items)


class FakeBonusStore(BonusStore):
    def __init__(self, bonus: Optional[BonusInput] = None) -> None:
        self.bonus = bonus or BonusInput()

    async def get_bonus(self, user_id: str) -> BonusInput:
        return self.bonus


# ── Fixtures ────────────────────────────────────────────────────────────

@pytest.fixture
def catalog_store() -> FakeCatalogStore:
    return FakeCatalogStore()


@pytest.fixture
def progress_store() -> FakeProgressStore:
    return FakeProgressStore()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def detail_store() -> FakeDetailStore:
    return FakeDetailStore()


def signal_kwargs(**overrides: Any) -> dict[str, Any]:
    base: dict[str, Any] = {"source": ProviderSource.STEAM, "native_id": "620", "title": "Portal 2"}
    base.update(overrides)
    return base
