"""
Catalog matcher.

Resolves a canonical release to a provider's native title id:

1. An existing (release, source) mapping is returned as-is.
2. The release's platform descriptor picks the provider system.
3. Every title in that system's list is scored against the release title.
4. The best candidate is accepted only at or above the match threshold.
5. Accepted matches are persisted once.

A provider that cannot search on its own service account searches on the
caller's linked credential, looked up only when a search actually runs.

Batch mode walks releases in id order behind an opaque cursor. One item's
failure is recorded and the walk continues; only authentication and
missing-credential errors stop the batch.
"""
from __future__ import annotations

import uuid
from typing import Iterable, Optional

from redis.exceptions import RedisError

from shared.errors import (
    FATAL_ERRORS,
    CoreError,
    DataIntegrityError,
    NoConfidentMatch,
    UnsupportedPlatform,
)
from shared.models.domain import (
    BatchMatchResult,
    CanonicalRelease,
    Candidate,
    ItemError,
    MatchResult,
    ProviderMapping,
)
from shared.models.enums import MatchReason, ProviderSource
from shared.utils.logging import get_logger
from shared.utils.metrics import MATCH_RESULTS
from shared.utils.redis_manager import RedisManager

from catalog.config import MatcherSettings, get_matcher_settings
from catalog.platforms import resolve_platform
from catalog.store import CatalogStore
from catalog.titles import overlap_score, title_tokens
from providers.base import BaseProvider, ProviderAuth
from providers.registry import ProviderRegistry
from providers.session import ProviderSession

logger = get_logger(__name__)


def best_candidate(
    title: str, candidates: Iterable[Candidate]
) -> tuple[Optional[Candidate], float]:
    """Highest-scoring candidate; the first one wins a tie."""
    target = title_tokens(title)
    best: Optional[Candidate] = None
    best_score = 0.0
    for candidate in candidates:
        score = overlap_score(target, title_tokens(candidate.title))
        if best is None or score > best_score:
            best, best_score = candidate, score
    return best, best_score


class CandidateSource:
    """A provider's per-system title list, fronted by a best-effort Redis cache."""

    def __init__(
        self,
        provider: BaseProvider,
        redis: Optional[RedisManager] = None,
        ttl_s: int = 7 * 86400,
    ) -> None:
        self._provider = provider
        self._redis = redis
        self._ttl_s = ttl_s

    async def list_candidates(self, system_id: int, auth: Optional[ProviderAuth] = None) -> list[Candidate]:
        source = self._provider.source.value
        if self._redis is not None:
            try:
                cached = await self._redis.get_candidates(source, system_id)
            except (RedisError, ValueError) as exc:
                logger.warning("candidate_cache_read_failed", source=source, system_id=system_id, error=str(exc))
                cached = None
            if cached is not None:
                return [Candidate.model_validate(c) for c in cached]

        candidates = await self._provider.search_titles(system_id, auth)

        if self._redis is not None and candidates:
            try:
                await self._redis.set_candidates(
                    source, system_id, [c.model_dump() for c in candidates], self._ttl_s
                )
            except RedisError as exc:
                logger.warning("candidate_cache_write_failed", source=source, system_id=system_id, error=str(exc))
        return candidates


class CatalogMatcher:
    def __init__(
        self,
        store: CatalogStore,
        providers: ProviderRegistry,
        redis: Optional[RedisManager] = None,
        settings: Optional[MatcherSettings] = None,
        session: Optional[ProviderSession] = None,
    ) -> None:
        self._store = store
        self._providers = providers
        self._redis = redis
        self._settings = settings or get_matcher_settings()
        self._session = session

    @property
    def threshold(self) -> float:
        return self._settings.match_threshold

    def _provider(self, source: ProviderSource) -> BaseProvider:
        provider = self._providers.get_provider(source)
        if provider is None:
            raise UnsupportedPlatform(f"No read adapter for {source.value}")
        return provider

    async def search_auth(self, source: ProviderSource, user_id: Optional[str]) -> Optional[ProviderAuth]:
        """The caller's credential, only when the provider cannot search on its service account."""
        provider = self._provider(source)
        if not provider.search_needs_user_auth or user_id is None or self._session is None:
            return None
        return await self._session.authorize(user_id, source)

    async def match_release(
        self,
        release: CanonicalRelease,
        source: ProviderSource,
        *,
        dry_run: bool = False,
        user_id: Optional[str] = None,
        auth: Optional[ProviderAuth] = None,
    ) -> MatchResult:
        """
        Match one release. `auth` is used for the title search when given;
        otherwise the credential of `user_id` is looked up if the provider
        needs one.
        """
        existing = await self._store.get_mapping(release.id, source)
        if existing is not None:
            MATCH_RESULTS.labels(source=source.value, outcome=MatchReason.ALREADY_MAPPED.value).inc()
            return MatchResult(
                release_id=release.id,
                title=release.display_title,
                mapped=True,
                reason=MatchReason.ALREADY_MAPPED,
                external_id=existing.external_id,
                dry_run=dry_run,
            )

        rule = resolve_platform(source, release.platform_descriptor)
        if auth is None:
            auth = await self.search_auth(source, user_id)
        candidates = await CandidateSource(
            self._provider(source), self._redis, self._settings.candidate_cache_ttl_s
        ).list_candidates(rule.system_id, auth)
        if not candidates:
            MATCH_RESULTS.labels(source=source.value, outcome=MatchReason.NO_SEARCH_RESULTS.value).inc()
            return MatchResult(
                release_id=release.id,
                title=release.display_title,
                mapped=False,
                reason=MatchReason.NO_SEARCH_RESULTS,
                score=0.0,
                dry_run=dry_run,
            )

        best, score = best_candidate(release.display_title, candidates)
        if best is None or score < self.threshold:
            MATCH_RESULTS.labels(source=source.value, outcome=MatchReason.NO_CONFIDENT_MATCH.value).inc()
            logger.info(
                "no_confident_match",
                release_id=str(release.id),
                title=release.display_title,
                best_guess=best.title if best else None,
                score=round(score, 4),
            )
            return MatchResult(
                release_id=release.id,
                title=release.display_title,
                mapped=False,
                reason=MatchReason.NO_CONFIDENT_MATCH,
                score=score,
                best_guess=best,
                dry_run=dry_run,
            )

        if not best.external_id:
            raise DataIntegrityError("Matched game had no ID", best.title)

        if not dry_run:
            await self._store.insert_mapping(
                ProviderMapping(
                    release_id=release.id,
                    source=source,
                    external_id=best.external_id,
                    external_title=best.title,
                )
            )
            logger.info(
                "mapping_created",
                release_id=str(release.id),
                source=source.value,
                external_id=best.external_id,
                score=round(score, 4),
            )

        MATCH_RESULTS.labels(source=source.value, outcome=MatchReason.MAPPED.value).inc()
        return MatchResult(
            release_id=release.id,
            title=release.display_title,
            mapped=True,
            reason=MatchReason.MAPPED,
            external_id=best.external_id,
            score=score,
            best_guess=best,
            dry_run=dry_run,
        )

    async def require_external_id(
        self,
        release: CanonicalRelease,
        source: ProviderSource,
        *,
        user_id: Optional[str] = None,
        auth: Optional[ProviderAuth] = None,
    ) -> str:
        """Native id for a release, matching on demand; raises NoConfidentMatch."""
        result = await self.match_release(release, source, user_id=user_id, auth=auth)
        if result.mapped and result.external_id:
            return result.external_id
        if result.reason == MatchReason.NO_SEARCH_RESULTS:
            raise NoConfidentMatch("No search results", release.display_title, score=0.0)
        raise NoConfidentMatch(
            "No confident match",
            release.display_title,
            best_guess=result.best_guess.model_dump() if result.best_guess else None,
            score=result.score or 0.0,
        )

    async def match_batch(
        self,
        source: ProviderSource,
        cursor: Optional[uuid.UUID] = None,
        limit: Optional[int] = None,
        *,
        dry_run: bool = False,
        user_id: Optional[str] = None,
    ) -> BatchMatchResult:
        """
        Match up to `limit` releases after `cursor`, strictly in id order.

        `next_cursor` is the id of the last release processed, so a caller
        that times out can resume without skipping or repeating items. The
        caller's credential is resolved at most once per page.
        """
        limit = max(1, min(limit or self._settings.batch_limit, self._settings.batch_limit_max))
        releases = await self._store.list_releases(cursor, limit + 1)
        page = releases[:limit]

        result = BatchMatchResult(source=source, next_cursor=cursor, has_more=len(releases) > limit)
        errors: list[ItemError] = []

        auth: Optional[ProviderAuth] = None
        if page and self._providers.get_provider(source) is not None:
            auth = await self.search_auth(source, user_id)

        for release in page:
            try:
                item = await self.match_release(release, source, dry_run=dry_run, auth=auth)
            except FATAL_ERRORS:
                raise
            except CoreError as exc:
                errors.append(ItemError(title=release.display_title, reason=exc.reason, details=exc.details))
                MATCH_RESULTS.labels(source=source.value, outcome="error").inc()
            except Exception as exc:
                logger.error(
                    "match_item_failed",
                    release_id=str(release.id),
                    error=str(exc),
                    exc_info=True,
                )
                errors.append(
                    ItemError(title=release.display_title, reason="Exception during mapping", details=str(exc))
                )
                MATCH_RESULTS.labels(source=source.value, outcome="error").inc()
            else:
                result.results.append(item)
                if item.reason == MatchReason.MAPPED:
                    result.mapped += 1
                else:
                    result.skipped += 1
            result.processed += 1
            result.next_cursor = release.id

        result.error_count = len(errors)
        result.errors = errors[: self._settings.error_limit]
        logger.info(
            "match_batch_done",
            source=source.value,
            processed=result.processed,
            mapped=result.mapped,
            skipped=result.skipped,
            errors=result.error_count,
            has_more=result.has_more,
        )
        return result
