"""
Live detail fetch: release -> provider external id -> provider detail call.
"""
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod

from shared.errors import DataIntegrityError, UnsupportedPlatform
from shared.models.enums import ProviderSource

from catalog.matcher import CatalogMatcher
from catalog.store import CatalogStore
from providers.base import RawItem
from providers.registry import ProviderRegistry
from providers.session import ProviderSession


class DetailFetcher(ABC):
    @abstractmethod
    async def fetch(
        self, user_id: str, release_id: uuid.UUID, source: ProviderSource
    ) -> list[RawItem]:
        pass


class ProviderDetailFetcher(DetailFetcher):
    def __init__(
        self,
        catalog: CatalogStore,
        matcher: CatalogMatcher,
        session: ProviderSession,
        providers: ProviderRegistry,
    ) -> None:
        self._catalog = catalog
        self._matcher = matcher
        self._session = session
        self._providers = providers

    async def fetch(
        self, user_id: str, release_id: uuid.UUID, source: ProviderSource
    ) -> list[RawItem]:
        release = await self._catalog.get_release(release_id)
        if release is None:
            raise DataIntegrityError("Release not found", str(release_id))
        provider = self._providers.get_provider(source)
        if provider is None:
            raise UnsupportedPlatform(f"No read adapter for {source.value}")
        auth = await self._session.authorize(user_id, source)
        external_id = await self._matcher.require_external_id(release, source, auth=auth)
        return await provider.fetch_details(auth, external_id)
