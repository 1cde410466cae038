"""
Steam Web API adapter. The linked account is a 64-bit SteamID; the web API
key is the service key from settings.
"""
from __future__ import annotations

from typing import Any

from shared.config import Settings, get_settings
from shared.errors import MissingCredential
from shared.models.enums import ProviderFeed, ProviderSource
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

from providers.base import BaseProvider, ProviderAuth, RawItem

logger = get_logger(__name__)


class SteamProvider(BaseProvider):
    source = ProviderSource.STEAM
    feeds = (ProviderFeed.STEAM_OWNED,)

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        super().__init__(
            ProviderHTTPClient(
                provider_name=self.source.value,
                base_url=self._settings.steam_base_url,
            )
        )

    def _key(self, auth: ProviderAuth) -> str:
        key = auth.token or self._settings.steam_web_api_key
        if not key:
            raise MissingCredential(self.source.value, "web API key not configured")
        return key

    async def list_titles(self, auth: ProviderAuth) -> dict[ProviderFeed, list[RawItem]]:
        data = self._expect_dict(
            await self._http.get_json(
                "/IPlayerService/GetOwnedGames/v0001/",
                params={
                    "key": self._key(auth),
                    "steamid": auth.account,
                    "include_appinfo": 1,
                    "include_played_free_games": 1,
                    "format": "json",
                },
            ),
            "owned games",
        )
        response = data.get("response") or {}
        return {ProviderFeed.STEAM_OWNED: self._expect_list(response.get("games"), "owned games")}

    async def fetch_details(self, auth: ProviderAuth, native_id: str) -> list[RawItem]:
        key = self._key(auth)
        achieved: Any = await self._http.get_json(
            "/ISteamUserStats/GetPlayerAchievements/v0001/",
            params={"key": key, "steamid": auth.account, "appid": native_id},
        )
        schema: Any = await self._http.get_json(
            "/ISteamUserStats/GetSchemaForGame/v2/",
            params={"key": key, "appid": native_id},
        )
        playerstats = self._expect_dict(achieved, "player achievements").get("playerstats") or {}
        player_rows = self._expect_list(playerstats.get("achievements"), "player achievements")

        game = self._expect_dict(schema, "game schema").get("game") or {}
        stats = game.get("availableGameStats") or {}
        schema_rows = self._expect_list(stats.get("achievements"), "schema achievements")

        by_name = {str(row.get("apiname") or "").strip(): row for row in player_rows}
        items: list[RawItem] = []
        for definition in schema_rows:
            api_name = str(definition.get("name") or definition.get("apiname") or "").strip()
            if not api_name:
                continue
            state = by_name.get(api_name, {})
            items.append({**definition, "apiname": api_name, **state})
        return items
