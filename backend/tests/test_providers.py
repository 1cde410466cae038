"""
Tests for the RetroAchievements and Steam read adapters. The HTTP client is
replaced with an AsyncMock keyed on request path.

Run: pytest backend/tests/test_providers.py -v
"""
from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest

from shared.config import Settings
from shared.errors import MalformedUpstreamPayload, MissingCredential
from shared.models.enums import ProviderFeed, ProviderSource
from providers.base import ProviderAuth
from providers.registry import build_provider_registry
from providers.retroachievements import RetroAchievementsProvider
from providers.steam import SteamProvider


def _route(responses: dict[str, Any]) -> AsyncMock:
    async def _get_json(path: str, params: dict[str, Any] | None = None) -> Any:
        return responses[path]

    return AsyncMock(side_effect=_get_json)


RA_AUTH = ProviderAuth(ProviderSource.RETROACHIEVEMENTS, "user-1", "player", "user-key")
STEAM_AUTH = ProviderAuth(ProviderSource.STEAM, "user-1", "76561198000000000")


# ── RetroAchievements ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_ra_list_titles_unwraps_want_to_play() -> None:
    provider = RetroAchievementsProvider(Settings())
    provider._http.get_json = _route({
        "/API_GetUserRecentlyPlayedGames.php": [{"GameID": 319, "Title": "Chrono Trigger"}],
        "/API_GetUserWantToPlayList.php": {"Count": 1, "Results": [{"ID": 1, "Title": "Earthbound"}]},
    })
    feeds = await provider.list_titles(RA_AUTH)
    assert feeds[ProviderFeed.RA_RECENT][0]["GameID"] == 319
    assert feeds[ProviderFeed.RA_WANT_TO_PLAY] == [{"ID": 1, "Title": "Earthbound"}]


@pytest.mark.asyncio
async def test_ra_details_flatten_and_derive_rarity() -> None:
    provider = RetroAchievementsProvider(Settings())
    provider._http.get_json = _route({
        "/API_GetGameInfoAndUserProgress.php": {
            "NumDistinctPlayers": 200,
            "Achievements": {
                "1": {"ID": 1, "Title": "Intro", "NumAwarded": 150},
                "2": {"ID": 2, "Title": "Boss", "NumAwarded": 50, "Rarity": 12.5},
            },
        },
    })
    items = await provider.fetch_details(RA_AUTH, "319")
    assert [i["Rarity"] for i in items] == [75.0, 12.5]


@pytest.mark.asyncio
async def test_ra_search_requires_service_account() -> None:
    provider = RetroAchievementsProvider(Settings(ra_username="", ra_web_api_key=""))
    with pytest.raises(MissingCredential):
        await provider.search_titles(3)


@pytest.mark.asyncio
async def test_ra_search_falls_back_to_caller_account() -> None:
    provider = RetroAchievementsProvider(Settings(ra_username="", ra_web_api_key=""))
    provider._http.get_json = AsyncMock(return_value=[{"ID": 319, "Title": "Chrono Trigger"}])

    assert provider.search_needs_user_auth is True
    candidates = await provider.search_titles(3, RA_AUTH)

    assert candidates[0].external_id == "319"
    params = provider._http.get_json.await_args.kwargs["params"]
    assert (params["z"], params["y"], params["i"]) == ("player", "user-key", 3)


@pytest.mark.asyncio
async def test_ra_service_account_wins_over_caller_account() -> None:
    provider = RetroAchievementsProvider(Settings(ra_username="svc", ra_web_api_key="k"))
    provider._http.get_json = AsyncMock(return_value=[])

    assert provider.search_needs_user_auth is False
    await provider.search_titles(3, RA_AUTH)

    params = provider._http.get_json.await_args.kwargs["params"]
    assert (params["z"], params["y"]) == ("svc", "k")


@pytest.mark.asyncio
async def test_ra_search_builds_candidates() -> None:
    provider = RetroAchievementsProvider(Settings(ra_username="svc", ra_web_api_key="k"))
    provider._http.get_json = _route({
        "/API_GetGameList.php": [{"ID": 319, "Title": "Chrono Trigger"}, {"Title": "Hack"}],
    })
    candidates = await provider.search_titles(3)
    assert [(c.external_id, c.title) for c in candidates] == [("319", "Chrono Trigger"), (None, "Hack")]


# ── Steam ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_steam_owned_games() -> None:
    provider = SteamProvider(Settings(steam_web_api_key="k"))
    provider._http.get_json = _route({
        "/IPlayerService/GetOwnedGames/v0001/": {"response": {"games": [{"appid": 620, "name": "Portal 2"}]}},
    })
    feeds = await provider.list_titles(STEAM_AUTH)
    assert feeds[ProviderFeed.STEAM_OWNED] == [{"appid": 620, "name": "Portal 2"}]


@pytest.mark.asyncio
async def test_steam_details_merge_schema_with_player_state() -> None:
    provider = SteamProvider(Settings(steam_web_api_key="k"))
    provider._http.get_json = _route({
        "/ISteamUserStats/GetPlayerAchievements/v0001/": {
            "playerstats": {"achievements": [{"apiname": "ACH_WIN", "achieved": 1, "unlocktime": 1700000000}]},
        },
        "/ISteamUserStats/GetSchemaForGame/v2/": {
            "game": {"availableGameStats": {"achievements": [
                {"name": "ACH_WIN", "displayName": "Winner"},
                {"name": "ACH_LOSE", "displayName": "Loser"},
            ]}},
        },
    })
    items = await provider.fetch_details(STEAM_AUTH, "620")
    assert [(i["apiname"], i.get("achieved")) for i in items] == [("ACH_WIN", 1), ("ACH_LOSE", None)]
    assert items[0]["displayName"] == "Winner"


@pytest.mark.asyncio
async def test_steam_without_key_is_missing_credential() -> None:
    provider = SteamProvider(Settings(steam_web_api_key=""))
    with pytest.raises(MissingCredential):
        await provider.list_titles(STEAM_AUTH)


@pytest.mark.asyncio
async def test_non_object_body_is_malformed() -> None:
    provider = SteamProvider(Settings(steam_web_api_key="k"))
    provider._http.get_json = _route({"/IPlayerService/GetOwnedGames/v0001/": ["unexpected"]})
    with pytest.raises(MalformedUpstreamPayload):
        await provider.list_titles(STEAM_AUTH)


def test_registry_ships_ra_and_steam() -> None:
    registry = build_provider_registry(Settings())
    assert set(registry.providers) == {ProviderSource.RETROACHIEVEMENTS, ProviderSource.STEAM}
    assert registry.get_provider(ProviderSource.PSN) is None
