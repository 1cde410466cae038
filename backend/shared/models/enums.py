"""Domain enumerations for the SaveState core."""
from __future__ import annotations

from enum import Enum


class ProviderSource(str, Enum):
    RETROACHIEVEMENTS = "ra"
    STEAM = "steam"
    PSN = "psn"
    XBOX = "xbox"


class CompletionStatus(str, Enum):
    COMPLETED = "completed"
    PLAYING = "playing"
    OWNED = "owned"
    BACK_BURNER = "back_burner"
    WISHLIST = "wishlist"
    DROPPED = "dropped"


class MatchReason(str, Enum):
    MAPPED = "mapped"
    ALREADY_MAPPED = "already_mapped"
    NO_CONFIDENT_MATCH = "no_confident_match"
    NO_SEARCH_RESULTS = "no_search_results"


class ProviderFeed(str, Enum):
    """One list a provider exposes; each feed has its own field layout."""

    STEAM_OWNED = "steam.owned"
    PSN_PLAYED = "psn.played"
    PSN_TROPHIES = "psn.trophies"
    XBOX_TITLES = "xbox.titles"
    RA_RECENT = "ra.recent"
    RA_WANT_TO_PLAY = "ra.want_to_play"

    @property
    def source(self) -> ProviderSource:
        return ProviderSource(self.value.split(".", 1)[0])
