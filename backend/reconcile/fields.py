"""
Declarative field mapping for provider feeds.

Each feed lists, per logical field, the raw paths to try in order (first
non-null value after conversion wins) and the converter to apply. Adding a
provider response shape means adding paths here, not touching call sites.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from shared.errors import MalformedUpstreamPayload
from shared.models.domain import ProviderSignal
from shared.models.enums import CompletionStatus, ProviderFeed

Converter = Callable[[Any], Any]

_DURATION = re.compile(
    r"^P(?:(?P<d>\d+)D)?(?:T(?:(?P<h>\d+)H)?(?:(?P<m>\d+)M)?(?:(?P<s>\d+(?:\.\d+)?)S)?)?$"
)


# ── Converters ──────────────────────────────────────────────────────────

def to_text(v: Any) -> Optional[str]:
    if v is None or isinstance(v, (dict, list)):
        return None
    s = str(v).strip()
    return s or None


def to_int(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(float(v))
    except (TypeError, ValueError, OverflowError):
        return None


def to_float(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError, OverflowError):
        return None
    return f if math.isfinite(f) else None


def iso_duration_minutes(v: Any) -> Optional[int]:
    """Parse an ISO-8601 duration such as PT228H56M33S into whole minutes, half up."""
    if not v:
        return None
    m = _DURATION.match(str(v).strip())
    if not m:
        return None
    total = (
        int(m.group("d") or 0) * 1440
        + int(m.group("h") or 0) * 60
        + int(m.group("m") or 0)
        + float(m.group("s") or 0) / 60
    )
    return int(total + 0.5)


def parse_timestamp(v: Any) -> Optional[datetime]:
    if not v or not isinstance(v, str):
        return None
    s = v.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        ts = datetime.fromisoformat(s)
    except ValueError:
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def unix_timestamp(v: Any) -> Optional[datetime]:
    seconds = to_int(v)
    if not seconds or seconds <= 0:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        # millisecond epochs and other out-of-range values
        return None


def trophy_tier_sum(v: Any) -> Optional[int]:
    """{"bronze": 10, "silver": 3, "gold": 1, "platinum": 0} -> 14."""
    if not isinstance(v, dict):
        return None
    return sum(to_int(v.get(tier)) or 0 for tier in ("bronze", "silver", "gold", "platinum"))


# ── Table ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FieldRule:
    paths: tuple[str, ...]
    convert: Converter = to_text
    default: Any = None


@dataclass(frozen=True)
class FeedMapping:
    feed: ProviderFeed
    fields: Mapping[str, FieldRule]
    default_status: Optional[CompletionStatus] = None
    derive_pct: bool = True


def _r(*paths: str, convert: Converter = to_text, default: Any = None) -> FieldRule:
    return FieldRule(paths=paths, convert=convert, default=default)


FIELD_MAP: dict[ProviderFeed, FeedMapping] = {
    ProviderFeed.STEAM_OWNED: FeedMapping(
        feed=ProviderFeed.STEAM_OWNED,
        default_status=CompletionStatus.OWNED,
        fields={
            "native_id": _r("appid"),
            "title": _r("name"),
            "platform_label": _r(default="PC"),
            "playtime_minutes": _r("playtime_forever", convert=to_int),
            "last_activity_at": _r("rtime_last_played", convert=unix_timestamp),
        },
    ),
    ProviderFeed.PSN_PLAYED: FeedMapping(
        feed=ProviderFeed.PSN_PLAYED,
        fields={
            "native_id": _r("titleId", "conceptId"),
            "title": _r("name", "localizedName"),
            "platform_label": _r(default="PlayStation"),
            "playtime_minutes": _r("playDuration", convert=iso_duration_minutes),
            "last_activity_at": _r("lastPlayedDateTime", convert=parse_timestamp),
        },
    ),
    ProviderFeed.PSN_TROPHIES: FeedMapping(
        feed=ProviderFeed.PSN_TROPHIES,
        fields={
            "native_id": _r("npCommunicationId"),
            "title": _r("trophyTitleName"),
            "platform_label": _r("trophyTitlePlatform", default="PlayStation"),
            "completion_pct": _r("progress", convert=to_float),
            "earned": _r("earnedTrophies", convert=trophy_tier_sum),
            "total": _r("definedTrophies", convert=trophy_tier_sum),
            "last_activity_at": _r("lastUpdatedDateTime", convert=parse_timestamp),
        },
    ),
    ProviderFeed.XBOX_TITLES: FeedMapping(
        feed=ProviderFeed.XBOX_TITLES,
        default_status=CompletionStatus.OWNED,
        fields={
            "native_id": _r("titleId", "title_id", "xbox_title_id", "pfTitleId"),
            "title": _r("name", "titleName", "title_name"),
            "platform_label": _r(default="Xbox"),
            "playtime_minutes": _r("playtime_minutes", "playtime_forever_minutes", convert=to_int),
            "earned": _r(
                "achievement.currentAchievements",
                "currentAchievements",
                "earnedAchievements",
                "achievement.earnedAchievements",
                "achievements_earned",
                convert=to_int,
            ),
            "total": _r(
                "achievement.totalAchievements",
                "totalAchievements",
                "availableAchievements",
                "achievement.availableAchievements",
                "achievements_total",
                convert=to_int,
            ),
            "points_earned": _r(
                "achievement.currentGamerscore",
                "currentGamerscore",
                "earnedGamerscore",
                "achievement.earnedGamerscore",
                "gamerscore_earned",
                convert=to_int,
            ),
            "points_total": _r(
                "achievement.totalGamerscore",
                "totalGamerscore",
                "maxGamerscore",
                "possibleGamerscore",
                "achievement.maxGamerscore",
                "achievement.possibleGamerscore",
                "gamerscore_total",
                convert=to_int,
            ),
            "completion_pct": _r("achievement.progressPercentage", convert=to_float),
            "last_activity_at": _r(
                "lastTimePlayed", "lastPlayed", "lastUnlockTime", "last_played_at",
                convert=parse_timestamp,
            ),
        },
    ),
    ProviderFeed.RA_RECENT: FeedMapping(
        feed=ProviderFeed.RA_RECENT,
        default_status=CompletionStatus.PLAYING,
        fields={
            "native_id": _r("GameID", "ID"),
            "title": _r("Title"),
            "platform_label": _r("ConsoleName"),
            "earned": _r("NumAchieved", "NumAwarded", convert=to_int),
            "total": _r("NumPossibleAchievements", "MaxPossible", convert=to_int),
            "earned_hardcore": _r("NumAchievedHardcore", "NumAwardedHardcore", convert=to_int),
            "points_earned": _r("ScoreAchieved", convert=to_int),
            "points_total": _r("PossibleScore", convert=to_int),
            "points_earned_hardcore": _r("ScoreAchievedHardcore", convert=to_int),
            "last_activity_at": _r("LastPlayed", convert=parse_timestamp),
        },
    ),
    ProviderFeed.RA_WANT_TO_PLAY: FeedMapping(
        feed=ProviderFeed.RA_WANT_TO_PLAY,
        default_status=CompletionStatus.WISHLIST,
        derive_pct=False,
        fields={
            "native_id": _r("ID", "GameID"),
            "title": _r("Title"),
            "platform_label": _r("ConsoleName"),
        },
    ),
}


def lookup_path(raw: Any, path: str) -> Any:
    """Walk a dotted path; numeric segments index into lists ("rewards.0.value")."""
    node = raw
    for part in path.split("."):
        if isinstance(node, Mapping):
            node = node.get(part)
        elif isinstance(node, list) and part.isdigit():
            idx = int(part)
            node = node[idx] if idx < len(node) else None
        else:
            return None
    return node


def evaluate_rule(rule: FieldRule, raw: Mapping[str, Any]) -> Any:
    """First non-null converted value across the rule's paths, else its default."""
    for path in rule.paths:
        value = rule.convert(lookup_path(raw, path))
        if value is not None:
            return value
    return rule.default


def extract_signal(feed: ProviderFeed, raw: Any) -> ProviderSignal:
    """Evaluate the feed's field table against one raw item."""
    if not isinstance(raw, Mapping):
        raise MalformedUpstreamPayload(f"{feed.value} item is not an object", type(raw).__name__)
    mapping = FIELD_MAP[feed]
    values: dict[str, Any] = {name: evaluate_rule(rule, raw) for name, rule in mapping.fields.items()}

    if not values.get("native_id") and not values.get("title"):
        raise MalformedUpstreamPayload(f"{feed.value} item has neither id nor title")

    if (
        mapping.derive_pct
        and values.get("completion_pct") is None
        and values.get("earned") is not None
        and values.get("total")
    ):
        values["completion_pct"] = round(100.0 * values["earned"] / values["total"], 2)

    return ProviderSignal(source=feed.source, status=mapping.default_status, **values)
