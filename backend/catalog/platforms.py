"""
Platform resolution: catalog platform descriptor → provider system id.

All descriptor fields are joined and folded (lowercase, punctuation to
spaces) before being tested against an ordered rule list. The first rule
that matches wins, so the more specific names come first: "game boy
advance" must be tried before "game boy", "playstation 2" before
"playstation".
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from shared.errors import UnsupportedPlatform
from shared.models.enums import ProviderSource

_FOLD = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class PlatformRule:
    name: str
    pattern: re.Pattern[str]
    system_id: int


def _rule(name: str, pattern: str, system_id: int) -> PlatformRule:
    return PlatformRule(name=name, pattern=re.compile(pattern), system_id=system_id)


RETROACHIEVEMENTS_RULES: tuple[PlatformRule, ...] = (
    _rule("gba", r"\b(game ?boy advance|gba)\b", 5),
    _rule("gbc", r"\b(game ?boy colou?r|gbc)\b", 6),
    _rule("gb", r"\b(game ?boy|gb)\b", 4),
    _rule("snes", r"\b(snes|super nintendo|super famicom|sfc)\b", 3),
    _rule("nes", r"\b(nes|nintendo entertainment system|famicom)\b", 7),
    _rule("n64", r"\b(n64|nintendo 64)\b", 2),
    _rule("ps2", r"\b(ps2|playstation 2)\b", 21),
    _rule("ps1", r"\b(ps1|psx|psone|playstation 1|playstation(?! ?(?:[3-9]|portable|vita)\b))\b", 12),
    _rule("genesis", r"\b(genesis|mega ?drive|md)\b", 1),
    _rule("master_system", r"\b(master system|sms)\b", 11),
    _rule("game_gear", r"\b(game gear|gg)\b", 15),
    _rule("pc_engine", r"\b(pc engine|turbografx(?: ?16)?|tg ?16)\b", 8),
    _rule("neo_geo_pocket", r"\b(neo ?geo pocket(?: colou?r)?|ngp|ngpc)\b", 14),
    _rule("lynx", r"\b(atari )?lynx\b", 13),
    _rule("virtual_boy", r"\bvirtual ?boy\b", 28),
    _rule("saturn", r"\bsaturn\b", 39),
    _rule("dreamcast", r"\bdreamcast\b", 40),
)

PLATFORM_RULES: dict[ProviderSource, tuple[PlatformRule, ...]] = {
    ProviderSource.RETROACHIEVEMENTS: RETROACHIEVEMENTS_RULES,
}


def fold_descriptor(fields: Iterable[Optional[str]]) -> str:
    joined = " ".join(f for f in fields if f)
    return _FOLD.sub(" ", joined.lower()).strip()


def resolve_platform(source: ProviderSource, fields: Iterable[Optional[str]]) -> PlatformRule:
    """Return the first rule matching the descriptor, or raise UnsupportedPlatform."""
    rules = PLATFORM_RULES.get(source)
    folded = fold_descriptor(fields)
    if not rules:
        raise UnsupportedPlatform(f"{source.value} has no title search", folded or None)
    for rule in rules:
        if rule.pattern.search(folded):
            return rule
    raise UnsupportedPlatform("Unsupported platform", folded or None)
