"""
Catalog matcher configuration.
Uses SS_MATCHER_ prefix; database and Redis come from shared settings.
"""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MatcherSettings(BaseSettings):
    """Matcher-specific settings; use get_settings() for Redis/DB."""

    model_config = SettingsConfigDict(
        env_prefix="SS_MATCHER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    match_threshold: float = Field(
        default=0.72, description="Minimum token-overlap score for an automatic mapping"
    )
    candidate_cache_ttl_s: int = Field(
        default=7 * 86400, description="TTL for cached per-system provider title lists"
    )
    batch_limit: int = Field(default=100, description="Default releases per batch invocation")
    batch_limit_max: int = Field(default=500, description="Upper bound accepted from callers")
    error_limit: int = Field(default=20, description="Errors kept in a batch result")


def get_matcher_settings() -> MatcherSettings:
    return MatcherSettings()
