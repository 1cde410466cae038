"""
Scoring configuration.
Uses SS_SCORING_ prefix. Every weight and threshold of the lifetime score
lives here so it can be tuned without touching the engine.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# (threshold, points) pairs; each crossed threshold adds its points.
Tiers = list[tuple[float, int]]


class ScoringSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SS_SCORING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Playtime ─────────────────────────────────────────────
    playtime_weight: float = Field(default=180.0, description="weight * ln(1 + hours)")

    # ── Completion status ────────────────────────────────────
    status_points: dict[str, int] = Field(
        default_factory=lambda: {
            "completed": 45,
            "playing": 18,
            "owned": 10,
            "back_burner": 8,
            "wishlist": 3,
            "dropped": 0,
        }
    )
    unknown_status_points: int = 6
    missing_status: str = "owned"

    # ── RetroAchievements ────────────────────────────────────
    ra_hardcore_weight: float = 0.65
    ra_pct_base: float = 0.85
    ra_pct_span: float = 0.30
    ra_weight: float = 140.0
    ra_normalizer: float = 120.0

    # ── PlayStation trophies ─────────────────────────────────
    psn_trophy_points_per_title: float = 40.0
    psn_trophy_weight: float = 90.0
    psn_trophy_normalizer: float = 40.0

    # ── Xbox achievements ────────────────────────────────────
    xbox_signal_scale: float = 250.0
    xbox_achievement_share: float = 0.6
    xbox_gamerscore_share: float = 0.4
    xbox_weight: float = 120.0
    xbox_normalizer: float = 40.0

    # ── Confidence ───────────────────────────────────────────
    confidence_floor: int = 35
    confidence_min: int = 0
    confidence_max: int = 100
    confidence_library_tiers: Tiers = Field(default_factory=lambda: [(20, 10), (60, 10)])
    confidence_steam_minutes_tiers: Tiers = Field(default_factory=lambda: [(600, 10), (3000, 8)])
    confidence_ra_touched_tiers: Tiers = Field(default_factory=lambda: [(10, 8), (30, 7)])
    confidence_psn_title_tiers: Tiers = Field(default_factory=lambda: [(10, 6), (30, 6)])
    confidence_psn_minutes_tiers: Tiers = Field(default_factory=lambda: [(600, 4)])
    confidence_xbox_title_tiers: Tiers = Field(default_factory=lambda: [(10, 6), (30, 6)])
    confidence_xbox_minutes_tiers: Tiers = Field(default_factory=lambda: [(600, 4)])
    confidence_eras_points: int = Field(default=10, description="Added when era history was supplied")


@lru_cache(maxsize=1)
def get_scoring_settings() -> ScoringSettings:
    return ScoringSettings()
