"""
Abstract base class for provider read adapters.

Adapters only fetch and unwrap raw JSON. Field extraction happens in
reconcile.fields (progress) and detail_cache.normalize (detail items),
so an adapter never decides what a field means.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any, Optional

from shared.errors import MalformedUpstreamPayload, UnsupportedPlatform
from shared.models.domain import Candidate
from shared.models.enums import ProviderFeed, ProviderSource
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)

RawItem = dict[str, Any]


@dataclass(frozen=True)
class ProviderAuth:
    """Short-lived authorization for one provider call."""
    source: ProviderSource
    user_id: str
    account: str
    token: str = ""


class BaseProvider(abc.ABC):
    """
    A provider's read API, modeled by shape only:

    - list_titles: owned/played titles per feed
    - fetch_details: achievement/trophy definitions with per-user earn state
    - search_titles: the title list of one system, for catalog matching
    """

    source: ProviderSource
    feeds: tuple[ProviderFeed, ...] = ()

    def __init__(self, http_client: ProviderHTTPClient) -> None:
        self._http = http_client

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    @abc.abstractmethod
    async def list_titles(self, auth: ProviderAuth) -> dict[ProviderFeed, list[RawItem]]:
        pass

    @abc.abstractmethod
    async def fetch_details(self, auth: ProviderAuth, native_id: str) -> list[RawItem]:
        pass

    @property
    def search_needs_user_auth(self) -> bool:
        """True when title search must run on the calling user's credential."""
        return False

    async def search_titles(self, system_id: int, auth: Optional[ProviderAuth] = None) -> list[Candidate]:
        raise UnsupportedPlatform(f"{self.source.value} has no title search")

    @staticmethod
    def _expect_list(data: Any, what: str) -> list[RawItem]:
        if data is None:
            return []
        if not isinstance(data, list):
            raise MalformedUpstreamPayload(f"Expected a list of {what}", type(data).__name__)
        return [item for item in data if isinstance(item, dict)]

    @staticmethod
    def _expect_dict(data: Any, what: str) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise MalformedUpstreamPayload(f"Expected an object for {what}", type(data).__name__)
        return data
