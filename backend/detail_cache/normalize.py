"""
Canonical detail items from raw provider achievement/trophy rows.

An item is earned when it carries an earn timestamp, an explicit truthy
earned flag, or a progress percentage of 100. Items are ordered earned
first, most recently earned first; ties keep provider order.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from shared.models.domain import DetailItem
from shared.models.enums import ProviderSource

from reconcile.fields import (
    FieldRule,
    evaluate_rule,
    parse_timestamp,
    to_float,
    to_int,
    to_text,
    unix_timestamp,
)

_TRUTHY = {"1", "true", "yes", "achieved", "unlocked", "earned"}
RA_BADGE_URL = "https://media.retroachievements.org/Badge/{badge}.png"


def _timestamp(v: Any) -> Optional[datetime]:
    ts = parse_timestamp(v) if isinstance(v, str) else unix_timestamp(v)
    # Xbox reports locked achievements as unlocked at 0001-01-01.
    if ts is not None and ts.year <= 1970:
        return None
    return ts


def _flag(v: Any) -> Optional[bool]:
    if v is None:
        return None
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return v == 1
    return str(v).strip().lower() in _TRUTHY


def _ra_badge(v: Any) -> Optional[str]:
    badge = to_text(v)
    return RA_BADGE_URL.format(badge=badge) if badge else None


@dataclass(frozen=True)
class DetailMapping:
    fields: Mapping[str, FieldRule]


def _r(*paths: str, convert: Any = to_text) -> FieldRule:
    return FieldRule(paths=paths, convert=convert)


DETAIL_MAP: dict[ProviderSource, DetailMapping] = {
    ProviderSource.RETROACHIEVEMENTS: DetailMapping(
        fields={
            "item_id": _r("ID", "id"),
            "name": _r("Title", "title"),
            "description": _r("Description", "description"),
            "points": _r("Points", "points", convert=to_int),
            "icon": _r("BadgeName", convert=_ra_badge),
            "rarity": _r("Rarity", convert=to_float),
            "earned_at": _r("DateEarnedHardcore", "DateEarned", convert=_timestamp),
            "earned_flag": _r("Earned", "earned", convert=_flag),
        }
    ),
    ProviderSource.STEAM: DetailMapping(
        fields={
            "item_id": _r("apiname", "name"),
            "name": _r("displayName", "name", "apiname"),
            "description": _r("description"),
            "icon": _r("icon"),
            "rarity": _r("percent", convert=to_float),
            "earned_at": _r("unlocktime", convert=_timestamp),
            "earned_flag": _r("achieved", convert=_flag),
        }
    ),
    ProviderSource.PSN: DetailMapping(
        fields={
            "item_id": _r("trophyId"),
            "name": _r("trophyName"),
            "description": _r("trophyDetail"),
            "icon": _r("trophyIconUrl"),
            "rarity": _r("trophyEarnedRate", convert=to_float),
            "earned_at": _r("earnedDateTime", convert=_timestamp),
            "earned_flag": _r("earned", convert=_flag),
            "progress_pct": _r("progressRate", convert=to_float),
        }
    ),
    ProviderSource.XBOX: DetailMapping(
        fields={
            "item_id": _r("id", "achievementId"),
            "name": _r("name"),
            "description": _r("description", "lockedDescription"),
            "points": _r("gamerscore", "rewards.0.value", convert=to_int),
            "icon": _r("mediaAssets.0.url", "icon"),
            "rarity": _r("rarity.currentPercentage", convert=to_float),
            "earned_at": _r("progression.timeUnlocked", "timeUnlocked", "unlockTime", convert=_timestamp),
            "earned_flag": _r("unlocked", "progressState", convert=_flag),
            "progress_pct": _r("progressPercentage", "progression.progressPercentage", convert=to_float),
        }
    ),
}


def is_earned(
    earned_at: Optional[datetime], earned_flag: Optional[bool], progress_pct: Optional[float]
) -> bool:
    return earned_at is not None or bool(earned_flag) or (
        progress_pct is not None and progress_pct >= 100
    )


def normalize_item(source: ProviderSource, raw: Mapping[str, Any]) -> Optional[DetailItem]:
    mapping = DETAIL_MAP[source]
    values = {name: evaluate_rule(rule, raw) for name, rule in mapping.fields.items()}
    item_id = values.get("item_id") or values.get("name")
    if not item_id:
        return None
    earned = is_earned(values.get("earned_at"), values.get("earned_flag"), values.get("progress_pct"))
    return DetailItem(
        item_id=item_id,
        name=values.get("name") or item_id,
        description=values.get("description"),
        points=values.get("points"),
        icon=values.get("icon"),
        rarity=values.get("rarity"),
        earned=earned,
        earned_at=values.get("earned_at") if earned else None,
    )


def sort_items(items: Iterable[DetailItem]) -> list[DetailItem]:
    def key(item: DetailItem) -> tuple[bool, float]:
        stamp = item.earned_at.timestamp() if item.earned_at else float("inf")
        return (not item.earned, -stamp if item.earned_at else stamp)

    return sorted(items, key=key)


def normalize_items(source: ProviderSource, raw_items: Iterable[Any]) -> list[DetailItem]:
    items = []
    for raw in raw_items:
        if not isinstance(raw, Mapping):
            continue
        item = normalize_item(source, raw)
        if item is not None:
            items.append(item)
    return sort_items(items)
