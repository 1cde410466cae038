"""
Provider registry: the set of read adapters available to this process.

PSN and Xbox have no adapter here; their token handshakes live outside
the core, and their titles arrive through the raw import endpoint.
"""
from __future__ import annotations

from typing import Optional

from shared.config import Settings
from shared.models.enums import ProviderSource
from shared.utils.logging import get_logger

from providers.base import BaseProvider
from providers.retroachievements import RetroAchievementsProvider
from providers.steam import SteamProvider

logger = get_logger(__name__)


class ProviderRegistry:
    def __init__(self, providers: dict[ProviderSource, BaseProvider]) -> None:
        self._providers = providers

    @property
    def providers(self) -> dict[ProviderSource, BaseProvider]:
        return self._providers

    def get_provider(self, source: ProviderSource) -> Optional[BaseProvider]:
        return self._providers.get(source)

    async def start(self) -> None:
        for provider in self._providers.values():
            await provider.start()
        logger.info("providers_started", providers=[s.value for s in self._providers])

    async def close(self) -> None:
        for provider in self._providers.values():
            await provider.close()


def build_provider_registry(settings: Settings) -> ProviderRegistry:
    """Construct the registry with every adapter this build ships."""
    providers: dict[ProviderSource, BaseProvider] = {
        ProviderSource.RETROACHIEVEMENTS: RetroAchievementsProvider(settings),
        ProviderSource.STEAM: SteamProvider(settings),
    }
    if not settings.ra_web_api_key:
        logger.warning("ra_service_key_missing", hint="catalog matching against RA will fail")
    if not settings.steam_web_api_key:
        logger.warning("steam_web_api_key_missing")
    return ProviderRegistry(providers)
