"""
Confidence: how complete the underlying data is, independent of the score.

Starts at a floor, gains fixed points for each volume threshold a source
crosses, gains more when the user supplied era history, then is clamped.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from shared.models.domain import BonusInput

from scoring.config import ScoringSettings


@dataclass(frozen=True)
class ThresholdRule:
    stat: str
    threshold: float
    points: int

    def applies(self, stats: Mapping[str, Any]) -> bool:
        return (stats.get(self.stat) or 0) >= self.threshold


def confidence_rules(settings: ScoringSettings) -> list[ThresholdRule]:
    tiers = (
        ("total_games", settings.confidence_library_tiers),
        ("steam_playtime_minutes", settings.confidence_steam_minutes_tiers),
        ("ra_games_touched", settings.confidence_ra_touched_tiers),
        ("psn_titles", settings.confidence_psn_title_tiers),
        ("psn_playtime_minutes", settings.confidence_psn_minutes_tiers),
        ("xbox_titles", settings.confidence_xbox_title_tiers),
        ("xbox_playtime_minutes", settings.confidence_xbox_minutes_tiers),
    )
    return [
        ThresholdRule(stat=stat, threshold=threshold, points=points)
        for stat, pairs in tiers
        for threshold, points in pairs
    ]


def compute_confidence(
    stats: Mapping[str, Any], bonus: BonusInput, settings: ScoringSettings
) -> int:
    confidence = settings.confidence_floor
    for rule in confidence_rules(settings):
        if rule.applies(stats):
            confidence += rule.points
    if bonus.eras:
        confidence += settings.confidence_eras_points
    confidence += bonus.confidence_bonus
    return max(settings.confidence_min, min(settings.confidence_max, confidence))
