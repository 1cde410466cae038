"""
RetroAchievements Web API adapter.

Every call authenticates with a username (z) and web API key (y). Per-user
reads use the linked account's own key; system title lists use the
service account from settings, falling back to the caller's linked account
when no service account is configured.
"""
from __future__ import annotations

from typing import Any, Optional

from shared.config import Settings, get_settings
from shared.errors import MissingCredential
from shared.models.domain import Candidate
from shared.models.enums import ProviderFeed, ProviderSource
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

from providers.base import BaseProvider, ProviderAuth, RawItem

logger = get_logger(__name__)

RECENT_GAMES_COUNT = 50


class RetroAchievementsProvider(BaseProvider):
    source = ProviderSource.RETROACHIEVEMENTS
    feeds = (ProviderFeed.RA_RECENT, ProviderFeed.RA_WANT_TO_PLAY)

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        super().__init__(
            ProviderHTTPClient(
                provider_name=self.source.value,
                base_url=self._settings.retroachievements_base_url,
            )
        )

    def _auth_params(self, auth: ProviderAuth) -> dict[str, Any]:
        return {"z": auth.account, "y": auth.token}

    async def list_titles(self, auth: ProviderAuth) -> dict[ProviderFeed, list[RawItem]]:
        recent = await self._http.get_json(
            "/API_GetUserRecentlyPlayedGames.php",
            params={**self._auth_params(auth), "u": auth.account, "c": RECENT_GAMES_COUNT},
        )
        want = await self._http.get_json(
            "/API_GetUserWantToPlayList.php",
            params={**self._auth_params(auth), "u": auth.account},
        )
        if isinstance(want, dict):
            want = want.get("Results")
        return {
            ProviderFeed.RA_RECENT: self._expect_list(recent, "recently played games"),
            ProviderFeed.RA_WANT_TO_PLAY: self._expect_list(want, "want-to-play games"),
        }

    async def fetch_details(self, auth: ProviderAuth, native_id: str) -> list[RawItem]:
        data = self._expect_dict(
            await self._http.get_json(
                "/API_GetGameInfoAndUserProgress.php",
                params={**self._auth_params(auth), "u": auth.account, "g": native_id},
            ),
            "game progress",
        )
        achievements = data.get("Achievements") or {}
        if isinstance(achievements, dict):
            achievements = list(achievements.values())
        items = self._expect_list(achievements, "achievements")

        players = data.get("NumDistinctPlayers") or 0
        for item in items:
            awarded = item.get("NumAwarded")
            if players and awarded is not None:
                item.setdefault("Rarity", round(100.0 * float(awarded) / float(players), 2))
        return items

    @property
    def search_needs_user_auth(self) -> bool:
        return not (self._settings.ra_username and self._settings.ra_web_api_key)

    async def search_titles(self, system_id: int, auth: Optional[ProviderAuth] = None) -> list[Candidate]:
        """System game list, read with the service account or else the caller's linked account."""
        if not self.search_needs_user_auth:
            params = {"z": self._settings.ra_username, "y": self._settings.ra_web_api_key}
        elif auth is not None and auth.account and auth.token:
            params = self._auth_params(auth)
        else:
            raise MissingCredential(
                self.source.value, "set the service account or link RetroAchievements for this user"
            )
        data = await self._http.get_json("/API_GetGameList.php", params={**params, "i": system_id, "f": 1})
        candidates = []
        for game in self._expect_list(data, "games"):
            game_id = game.get("ID") or game.get("GameID")
            candidates.append(
                Candidate(
                    external_id=str(game_id) if game_id else None,
                    title=str(game.get("Title") or ""),
                )
            )
        logger.debug("ra_game_list_fetched", system_id=system_id, count=len(candidates))
        return candidates
