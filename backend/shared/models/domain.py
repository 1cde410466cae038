"""
Pydantic v2 domain models shared across the SaveState core.
These are the canonical wire/internal representations, not ORM models.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.models.enums import CompletionStatus, MatchReason, ProviderSource


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Catalog ─────────────────────────────────────────────────────────────
class CanonicalRelease(DomainModel):
    """One game on one platform, as the catalog knows it."""
    id: uuid.UUID
    display_title: str
    platform_key: Optional[str] = None
    platform_name: Optional[str] = None
    platform_label: Optional[str] = None

    @property
    def platform_descriptor(self) -> list[str]:
        return [p for p in (self.platform_key, self.platform_name, self.platform_label) if p]


class ProviderMapping(DomainModel):
    release_id: uuid.UUID
    source: ProviderSource
    external_id: str
    external_title: Optional[str] = None


class Candidate(DomainModel):
    """One entry of a provider's per-system title list."""
    external_id: Optional[str] = None
    title: str


class MatchResult(DomainModel):
    release_id: uuid.UUID
    title: str
    mapped: bool
    reason: MatchReason
    external_id: Optional[str] = None
    score: Optional[float] = None
    best_guess: Optional[Candidate] = None
    dry_run: bool = False


class ItemError(DomainModel):
    """A per-item failure recorded by a batch operation."""
    title: str
    reason: str
    details: Optional[str] = None


class BatchMatchResult(DomainModel):
    source: ProviderSource
    processed: int = 0
    mapped: int = 0
    skipped: int = 0
    results: list[MatchResult] = Field(default_factory=list)
    errors: list[ItemError] = Field(default_factory=list)
    error_count: int = 0
    next_cursor: Optional[uuid.UUID] = None
    has_more: bool = False


# ── Progress ────────────────────────────────────────────────────────────
COUNTER_FIELDS: tuple[str, ...] = (
    "earned",
    "total",
    "earned_hardcore",
    "points_earned",
    "points_total",
    "points_earned_hardcore",
    "completion_pct",
)


class ProviderSignal(DomainModel):
    """A single observation from one provider sync. Never persisted as-is."""
    source: ProviderSource
    native_id: Optional[str] = None
    title: Optional[str] = None
    platform_label: Optional[str] = None
    status: Optional[CompletionStatus] = None
    playtime_minutes: Optional[int] = None
    earned: Optional[int] = None
    total: Optional[int] = None
    earned_hardcore: Optional[int] = None
    points_earned: Optional[int] = None
    points_total: Optional[int] = None
    points_earned_hardcore: Optional[int] = None
    completion_pct: Optional[float] = None
    last_activity_at: Optional[datetime] = None


class ReconciledProgress(DomainModel):
    """Merged per (user, source, key) state."""
    user_id: str
    source: ProviderSource
    key: str
    release_id: Optional[uuid.UUID] = None
    title: Optional[str] = None
    platform_label: Optional[str] = None
    status: Optional[CompletionStatus] = None
    playtime_minutes: Optional[int] = None
    earned: Optional[int] = None
    total: Optional[int] = None
    earned_hardcore: Optional[int] = None
    points_earned: Optional[int] = None
    points_total: Optional[int] = None
    points_earned_hardcore: Optional[int] = None
    completion_pct: Optional[float] = None
    updated_at: datetime


class SyncResult(DomainModel):
    source: ProviderSource
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[ItemError] = Field(default_factory=list)
    error_count: int = 0
    warnings: list[str] = Field(default_factory=list)


# ── Detail cache ────────────────────────────────────────────────────────
class DetailItem(DomainModel):
    """One achievement or trophy with its per-user earn state."""
    item_id: str
    name: str
    description: Optional[str] = None
    points: Optional[int] = None
    icon: Optional[str] = None
    rarity: Optional[float] = None
    earned: bool = False
    earned_at: Optional[datetime] = None


class CachedDetailSet(DomainModel):
    user_id: str
    release_id: uuid.UUID
    source: ProviderSource
    fetched_at: datetime
    items: list[DetailItem] = Field(default_factory=list)


class DetailResult(DomainModel):
    release_id: uuid.UUID
    source: ProviderSource
    cached: bool
    fetched_at: datetime
    items: list[DetailItem] = Field(default_factory=list)
    earned: int = 0
    total: int = 0
    warning: Optional[str] = None


# ── Scoring ─────────────────────────────────────────────────────────────
class BonusInput(DomainModel):
    """Self-reported gaming history supplied by the user."""
    bonus_points: int = 0
    confidence_bonus: int = 0
    eras: list[str] = Field(default_factory=list)


class ExplainLine(DomainModel):
    label: str
    points: int
    detail: str


class ScoreBreakdown(DomainModel):
    score_total: int
    confidence: int
    components: dict[str, int] = Field(default_factory=dict)
    stats: dict[str, Any] = Field(default_factory=dict)
    explain: list[ExplainLine] = Field(default_factory=list)
