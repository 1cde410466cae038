"""
Lifetime score engine.

compute_score is pure: the same rows and bonus always give the same
breakdown. Rows are ordered by (source, key) before aggregation so storage
order never leaks into the result. Persisting a snapshot is the caller's job.

Components (all additive):
    steam_playtime      weight * ln(1 + hours)
    completion_status   per library entry, best status wins
    retroachievements   weight * ln(1 + weighted_points / normalizer)
    psn_playtime        weight * ln(1 + hours)
    psn_trophies        weight * ln(1 + trophy_signal / normalizer)
    xbox_playtime       weight * ln(1 + hours)
    xbox_achievements   weight * ln(1 + achievement_signal / normalizer)
    era_bonus           self-reported history points
"""
from __future__ import annotations

import math
from typing import Any, Iterable, Optional

from shared.models.domain import BonusInput, ExplainLine, ReconciledProgress, ScoreBreakdown
from shared.models.enums import CompletionStatus, ProviderSource

from scoring.confidence import compute_confidence
from scoring.config import ScoringSettings, get_scoring_settings


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def log_scaled(minutes: float, weight: float) -> int:
    hours = max(0.0, minutes) / 60
    return round_half_up(weight * math.log1p(hours))


def compressed(raw: float, weight: float, normalizer: float) -> int:
    return round_half_up(weight * math.log1p(max(0.0, raw) / normalizer))


def _ratio(pct: Optional[float]) -> float:
    return max(0.0, min(100.0, pct or 0.0)) / 100


def _hours(minutes: float) -> int:
    return round_half_up(minutes / 60)


# ── Library entries ─────────────────────────────────────────────────────

def library_entries(rows: Iterable[ReconciledProgress]) -> list[list[ReconciledProgress]]:
    """Rows linked to the same release form one entry; unlinked rows stand alone."""
    entries: dict[tuple[str, ...], list[ReconciledProgress]] = {}
    for row in rows:
        if row.release_id is not None:
            key: tuple[str, ...] = ("release", str(row.release_id))
        else:
            key = ("row", row.source.value, row.key)
        entries.setdefault(key, []).append(row)
    return list(entries.values())


def _status_points(status: Optional[CompletionStatus], settings: ScoringSettings) -> tuple[str, int]:
    name = status.value if status is not None else settings.missing_status
    return name, settings.status_points.get(name, settings.unknown_status_points)


def entry_status(entry: list[ReconciledProgress], settings: ScoringSettings) -> tuple[str, int]:
    best = _status_points(entry[0].status, settings)
    for row in entry[1:]:
        candidate = _status_points(row.status, settings)
        if candidate[1] > best[1]:
            best = candidate
    return best


# ── Engine ──────────────────────────────────────────────────────────────

def compute_score(
    rows: Iterable[ReconciledProgress],
    bonus: Optional[BonusInput] = None,
    settings: Optional[ScoringSettings] = None,
) -> ScoreBreakdown:
    s = settings or get_scoring_settings()
    bonus = bonus or BonusInput()
    ordered = sorted(rows, key=lambda r: (r.source.value, r.key))

    def of(source: ProviderSource) -> list[ReconciledProgress]:
        return [r for r in ordered if r.source == source]

    steam, ra, psn, xbox = (
        of(ProviderSource.STEAM),
        of(ProviderSource.RETROACHIEVEMENTS),
        of(ProviderSource.PSN),
        of(ProviderSource.XBOX),
    )

    # Completion status
    entries = library_entries(ordered)
    completion_points = 0
    completed_games = 0
    for entry in entries:
        name, points = entry_status(entry, s)
        completion_points += points
        if name == CompletionStatus.COMPLETED.value:
            completed_games += 1

    # Steam
    steam_minutes = sum(r.playtime_minutes or 0 for r in steam)

    # RetroAchievements
    ra_touched = 0
    ra_points_raw = 0
    ra_hardcore_delta = 0
    for r in ra:
        earned = r.points_earned or 0
        if (r.points_total or 0) > 0 or earned > 0:
            ra_touched += 1
        delta = max(0, (r.points_earned_hardcore or 0) - earned)
        ra_hardcore_delta += delta
        multiplier = s.ra_pct_base + s.ra_pct_span * _ratio(r.completion_pct)
        ra_points_raw += round_half_up((earned + s.ra_hardcore_weight * delta) * multiplier)

    # PlayStation
    psn_minutes = sum(r.playtime_minutes or 0 for r in psn)
    psn_with_progress = [r for r in psn if r.completion_pct is not None]
    psn_trophy_raw = sum(
        round_half_up(s.psn_trophy_points_per_title * _ratio(r.completion_pct)) for r in psn_with_progress
    )

    # Xbox
    xbox_minutes = sum(r.playtime_minutes or 0 for r in xbox)
    xbox_ach_earned = sum(r.earned or 0 for r in xbox)
    xbox_ach_total = sum(r.total or 0 for r in xbox)
    xbox_gs_earned = sum(r.points_earned or 0 for r in xbox)
    xbox_gs_total = sum(r.points_total or 0 for r in xbox)
    ach_ratio = xbox_ach_earned / xbox_ach_total if xbox_ach_total > 0 else 0.0
    gs_ratio = xbox_gs_earned / xbox_gs_total if xbox_gs_total > 0 else 0.0
    xbox_signal_raw = round_half_up(
        s.xbox_signal_scale * (s.xbox_achievement_share * ach_ratio + s.xbox_gamerscore_share * gs_ratio)
    )

    components = {
        "steam_playtime": log_scaled(steam_minutes, s.playtime_weight),
        "completion_status": completion_points,
        "retroachievements": compressed(ra_points_raw, s.ra_weight, s.ra_normalizer),
        "psn_playtime": log_scaled(psn_minutes, s.playtime_weight),
        "psn_trophies": compressed(psn_trophy_raw, s.psn_trophy_weight, s.psn_trophy_normalizer),
        "xbox_playtime": log_scaled(xbox_minutes, s.playtime_weight),
        "xbox_achievements": compressed(xbox_signal_raw, s.xbox_weight, s.xbox_normalizer),
        "era_bonus": bonus.bonus_points,
    }

    stats: dict[str, Any] = {
        "total_games": len(entries),
        "completed_games": completed_games,
        "steam_playtime_minutes": steam_minutes,
        "ra_games_touched": ra_touched,
        "ra_points_raw": ra_points_raw,
        "ra_hardcore_delta_raw": ra_hardcore_delta,
        "psn_titles": len(psn),
        "psn_playtime_minutes": psn_minutes,
        "psn_trophy_signal_raw": psn_trophy_raw,
        "xbox_titles": len(xbox),
        "xbox_achievements_earned": xbox_ach_earned,
        "xbox_achievements_total": xbox_ach_total,
        "xbox_gamerscore_earned": xbox_gs_earned,
        "xbox_gamerscore_total": xbox_gs_total,
        "xbox_playtime_minutes": xbox_minutes,
        "xbox_achievement_signal_raw": xbox_signal_raw,
    }

    return ScoreBreakdown(
        score_total=sum(components.values()),
        confidence=compute_confidence(stats, bonus, s),
        components=components,
        stats=stats,
        explain=explain(components, stats, bonus, psn_trophies_present=bool(psn_with_progress)),
    )


def _fraction(earned: int, total: int) -> str:
    return f"{earned}/{total}" if total > 0 else str(earned)


def explain(
    components: dict[str, int],
    stats: dict[str, Any],
    bonus: BonusInput,
    *,
    psn_trophies_present: bool,
) -> list[ExplainLine]:
    """Human-readable lines, one per component, built from computed values only."""
    if stats["xbox_titles"]:
        xbox_detail = (
            f"{stats['xbox_titles']} titles, "
            f"{_fraction(stats['xbox_achievements_earned'], stats['xbox_achievements_total'])} achievements, "
            f"{_fraction(stats['xbox_gamerscore_earned'], stats['xbox_gamerscore_total'])} gamerscore"
        )
    else:
        xbox_detail = "No Xbox titles imported yet"

    return [
        ExplainLine(
            label="Steam playtime",
            points=components["steam_playtime"],
            detail=f"{_hours(stats['steam_playtime_minutes'])}h total playtime, log-scaled",
        ),
        ExplainLine(
            label="Completion status",
            points=components["completion_status"],
            detail=f"{stats['completed_games']} completed of {stats['total_games']} library entries",
        ),
        ExplainLine(
            label="RetroAchievements",
            points=components["retroachievements"],
            detail=(
                f"{stats['ra_games_touched']} games touched, {stats['ra_points_raw']} weighted points "
                f"including {stats['ra_hardcore_delta_raw']} hardcore bonus points"
            ),
        ),
        ExplainLine(
            label="PlayStation playtime",
            points=components["psn_playtime"],
            detail=f"{_hours(stats['psn_playtime_minutes'])}h total playtime, log-scaled",
        ),
        ExplainLine(
            label="PlayStation trophies",
            points=components["psn_trophies"],
            detail=(
                f"Trophy progress signal {stats['psn_trophy_signal_raw']} across {stats['psn_titles']} titles"
                if psn_trophies_present
                else "No trophy progress imported yet"
            ),
        ),
        ExplainLine(
            label="Xbox playtime",
            points=components["xbox_playtime"],
            detail=f"{_hours(stats['xbox_playtime_minutes'])}h total playtime, log-scaled",
        ),
        ExplainLine(label="Xbox achievements", points=components["xbox_achievements"], detail=xbox_detail),
        ExplainLine(
            label="Era history bonus",
            points=components["era_bonus"],
            detail=f"{len(bonus.eras)} eras claimed" if bonus.eras else "No era history supplied",
        ),
    ]
