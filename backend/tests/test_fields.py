"""
Unit tests for the declarative feed field map.

Run: pytest backend/tests/test_fields.py -v
"""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from shared.errors import MalformedUpstreamPayload
from shared.models.enums import CompletionStatus, ProviderFeed, ProviderSource
from reconcile.fields import (
    extract_signal,
    iso_duration_minutes,
    lookup_path,
    parse_timestamp,
    to_float,
    to_int,
    trophy_tier_sum,
    unix_timestamp,
)


# ── Converters ──────────────────────────────────────────────────────────

def test_iso_duration_rounds_half_up() -> None:
    assert iso_duration_minutes("PT228H56M33S") == 13737
    assert iso_duration_minutes("PT1M29S") == 1
    assert iso_duration_minutes("P1DT2H") == 1560


def test_iso_duration_rejects_garbage() -> None:
    assert iso_duration_minutes("") is None
    assert iso_duration_minutes("3 hours") is None


def test_parse_timestamp_accepts_z_suffix() -> None:
    assert parse_timestamp("2024-02-01T10:00:00Z") == datetime(2024, 2, 1, 10, 0, tzinfo=timezone.utc)
    assert parse_timestamp("not a date") is None


def test_unix_zero_is_missing() -> None:
    assert unix_timestamp(0) is None
    assert unix_timestamp("1700000000") == datetime.fromtimestamp(1700000000, tz=timezone.utc)


def test_trophy_tier_sum() -> None:
    assert trophy_tier_sum({"bronze": 10, "silver": 3, "gold": 1, "platinum": 0}) == 14
    assert trophy_tier_sum(None) is None


# ── Feeds ───────────────────────────────────────────────────────────────

def test_steam_owned() -> None:
    signal = extract_signal(
        ProviderFeed.STEAM_OWNED,
        {"appid": 620, "name": "Portal 2", "playtime_forever": 1337, "rtime_last_played": 1700000000},
    )
    assert signal.source == ProviderSource.STEAM
    assert signal.native_id == "620"
    assert signal.platform_label == "PC"
    assert signal.status == CompletionStatus.OWNED
    assert signal.playtime_minutes == 1337
    assert signal.last_activity_at is not None


def test_psn_played_duration() -> None:
    signal = extract_signal(
        ProviderFeed.PSN_PLAYED,
        {"titleId": "PPSA01284_00", "name": "Returnal", "playDuration": "PT228H56M33S"},
    )
    assert signal.playtime_minutes == 13737
    assert signal.status is None


def test_psn_trophies_tiers_and_progress() -> None:
    signal = extract_signal(
        ProviderFeed.PSN_TROPHIES,
        {
            "npCommunicationId": "NPWR20188_00",
            "trophyTitleName": "Returnal",
            "trophyTitlePlatform": "PS5",
            "progress": 42,
            "earnedTrophies": {"bronze": 10, "silver": 3, "gold": 1, "platinum": 0},
            "definedTrophies": {"bronze": 30, "silver": 8, "gold": 3, "platinum": 1},
        },
    )
    assert signal.earned == 14
    assert signal.total == 42
    assert signal.completion_pct == 42.0
    assert signal.platform_label == "PS5"


def test_xbox_fallback_chain_and_derived_pct() -> None:
    signal = extract_signal(
        ProviderFeed.XBOX_TITLES,
        {
            "titleId": "1234",
            "titleName": "Halo Infinite",
            "achievement": {"currentAchievements": 30, "totalAchievements": 120, "currentGamerscore": 400},
            "maxGamerscore": 1000,
        },
    )
    assert signal.title == "Halo Infinite"
    assert signal.earned == 30
    assert signal.total == 120
    assert signal.points_earned == 400
    assert signal.points_total == 1000
    assert signal.completion_pct == 25.0


def test_ra_recent_counters() -> None:
    signal = extract_signal(
        ProviderFeed.RA_RECENT,
        {
            "GameID": 319,
            "Title": "Chrono Trigger",
            "ConsoleName": "SNES",
            "NumAchieved": 20,
            "NumPossibleAchievements": 80,
            "ScoreAchieved": 150,
            "ScoreAchievedHardcore": 180,
            "PossibleScore": 700,
            "LastPlayed": "2024-02-01 10:00:00",
        },
    )
    assert signal.status == CompletionStatus.PLAYING
    assert signal.points_earned_hardcore == 180
    assert signal.completion_pct == 25.0
    assert signal.last_activity_at == datetime(2024, 2, 1, 10, 0, tzinfo=timezone.utc)


def test_ra_want_to_play_is_wishlist_without_pct() -> None:
    signal = extract_signal(ProviderFeed.RA_WANT_TO_PLAY, {"ID": 1, "Title": "Earthbound", "ConsoleName": "SNES"})
    assert signal.status == CompletionStatus.WISHLIST
    assert signal.completion_pct is None


def test_item_without_id_or_title_is_malformed() -> None:
    with pytest.raises(MalformedUpstreamPayload):
        extract_signal(ProviderFeed.STEAM_OWNED, {"playtime_forever": 10})


def test_non_object_item_is_malformed() -> None:
    with pytest.raises(MalformedUpstreamPayload):
        extract_signal(ProviderFeed.STEAM_OWNED, ["620"])


def test_out_of_range_numbers_become_missing() -> None:
    assert to_int("1e400") is None
    assert to_int(float("nan")) is None
    assert to_float("1e400") is None
    assert to_float(10**400) is None
    assert unix_timestamp(10**13) is None
    assert unix_timestamp(1700000000000) is None


def test_lookup_path_indexes_lists() -> None:
    raw = {"rewards": [{"value": 15}], "mediaAssets": []}
    assert lookup_path(raw, "rewards.0.value") == 15
    assert lookup_path(raw, "rewards.1.value") is None
    assert lookup_path(raw, "mediaAssets.0.url") is None
    assert lookup_path(raw, "rewards.x") is None
