"""
Unit tests for the catalog matcher: single matches, threshold boundary and batches.

Run: pytest backend/tests/test_matcher.py -v
"""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import RedisError

from shared.errors import DataIntegrityError, MissingCredential, NoConfidentMatch
from shared.models.domain import Candidate
from shared.models.enums import MatchReason, ProviderSource
from catalog.config import MatcherSettings
from catalog.matcher import CandidateSource, CatalogMatcher, best_candidate
from providers.registry import ProviderRegistry

from conftest import FakeCatalogStore, FakeProvider, FakeSession, make_release, release_id

RA = ProviderSource.RETROACHIEVEMENTS
SNES = 3


def _matcher(
    store: FakeCatalogStore,
    provider: FakeProvider,
    threshold: float = 0.72,
    redis: MagicMock | None = None,
    session: FakeSession | None = None,
) -> CatalogMatcher:
    settings = MatcherSettings(match_threshold=threshold, batch_limit=100, error_limit=5)
    return CatalogMatcher(store, ProviderRegistry({RA: provider}), redis=redis, settings=settings, session=session)


def _words(prefix: str, n: int) -> list[str]:
    return [f"{prefix}{i}" for i in range(n)]


# ── best_candidate ──────────────────────────────────────────────────────

def test_best_candidate_first_wins_tie() -> None:
    first = Candidate(external_id="1", title="Mega Man")
    second = Candidate(external_id="2", title="Mega Man")
    best, score = best_candidate("Mega Man (USA)", [first, second])
    assert best is first
    assert score == 1.0


def test_best_candidate_empty() -> None:
    assert best_candidate("Anything", []) == (None, 0.0)


# ── match_release ───────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_scenario_a_exact_match_is_persisted() -> None:
    release = make_release(1, "Chrono Trigger (USA)")
    store = FakeCatalogStore([release])
    provider = FakeProvider(candidates={SNES: [Candidate(external_id="319", title="Chrono Trigger")]})

    result = await _matcher(store, provider).match_release(release, RA)

    assert result.mapped is True
    assert result.reason == MatchReason.MAPPED
    assert result.score == 1.0
    assert result.external_id == "319"
    assert store.mappings[(release.id, RA)].external_id == "319"


@pytest.mark.asyncio
async def test_scenario_d_low_score_returns_best_guess() -> None:
    release = make_release(1, "alpha beta gamma delta epsilon")
    store = FakeCatalogStore([release])
    guess = Candidate(external_id="9", title="alpha beta gamma zeta eta")
    provider = FakeProvider(candidates={SNES: [guess, Candidate(external_id="8", title="omega")]})

    result = await _matcher(store, provider).match_release(release, RA)

    assert result.mapped is False
    assert result.reason == MatchReason.NO_CONFIDENT_MATCH
    assert result.score == pytest.approx(0.60)
    assert result.best_guess == guess
    assert store.mappings == {}


@pytest.mark.asyncio
async def test_threshold_boundary() -> None:
    # 18 shared of 25 tokens == 0.72 exactly
    title = " ".join(_words("w", 25))
    candidate = Candidate(external_id="42", title=" ".join(_words("w", 18) + _words("x", 7)))
    release = make_release(1, title)

    accepted = await _matcher(FakeCatalogStore([release]), FakeProvider(candidates={SNES: [candidate]})).match_release(
        release, RA
    )
    assert accepted.score == 0.72
    assert accepted.mapped is True


@pytest.mark.asyncio
@pytest.mark.parametrize("score, mapped", [(0.71999, False), (0.72, True)])
async def test_threshold_comparison(monkeypatch: pytest.MonkeyPatch, score: float, mapped: bool) -> None:
    candidate = Candidate(external_id="42", title="Stubbed")
    release = make_release(1, "Stubbed")
    monkeypatch.setattr("catalog.matcher.best_candidate", lambda title, candidates: (candidate, score))

    result = await _matcher(FakeCatalogStore([release]), FakeProvider(candidates={SNES: [candidate]})).match_release(
        release, RA
    )

    assert result.score == score
    assert result.mapped is mapped
    assert result.reason == (MatchReason.MAPPED if mapped else MatchReason.NO_CONFIDENT_MATCH)


@pytest.mark.asyncio
async def test_empty_candidate_list_is_distinct_reason() -> None:
    release = make_release(1, "Chrono Trigger")
    result = await _matcher(FakeCatalogStore([release]), FakeProvider()).match_release(release, RA)
    assert result.reason == MatchReason.NO_SEARCH_RESULTS
    assert result.score == 0.0
    assert result.best_guess is None


@pytest.mark.asyncio
async def test_existing_mapping_short_circuits() -> None:
    release = make_release(1, "Chrono Trigger")
    store = FakeCatalogStore([release])
    provider = FakeProvider(candidates={SNES: [Candidate(external_id="319", title="Chrono Trigger")]})
    matcher = _matcher(store, provider)

    await matcher.match_release(release, RA)
    again = await matcher.match_release(release, RA)

    assert again.reason == MatchReason.ALREADY_MAPPED
    assert again.external_id == "319"
    assert provider.search_calls == 1
    assert store.inserts == 1


@pytest.mark.asyncio
async def test_dry_run_does_not_persist() -> None:
    release = make_release(1, "Chrono Trigger")
    store = FakeCatalogStore([release])
    provider = FakeProvider(candidates={SNES: [Candidate(external_id="319", title="Chrono Trigger")]})

    result = await _matcher(store, provider).match_release(release, RA, dry_run=True)

    assert result.mapped is True
    assert result.dry_run is True
    assert store.mappings == {}


@pytest.mark.asyncio
async def test_matched_candidate_without_id_is_integrity_error() -> None:
    release = make_release(1, "Chrono Trigger")
    provider = FakeProvider(candidates={SNES: [Candidate(external_id=None, title="Chrono Trigger")]})
    with pytest.raises(DataIntegrityError):
        await _matcher(FakeCatalogStore([release]), provider).match_release(release, RA)


@pytest.mark.asyncio
async def test_require_external_id_raises_with_best_guess() -> None:
    release = make_release(1, "alpha beta gamma delta epsilon")
    provider = FakeProvider(candidates={SNES: [Candidate(external_id="9", title="alpha beta gamma zeta eta")]})
    with pytest.raises(NoConfidentMatch) as exc_info:
        await _matcher(FakeCatalogStore([release]), provider).require_external_id(release, RA)
    assert exc_info.value.best_guess == {"external_id": "9", "title": "alpha beta gamma zeta eta"}
    assert exc_info.value.score == pytest.approx(0.6)


# ── candidate cache ─────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_candidate_cache_hit_skips_provider() -> None:
    redis = MagicMock()
    redis.get_candidates = AsyncMock(return_value=[{"external_id": "1", "title": "Tetris"}])
    redis.set_candidates = AsyncMock()
    provider = FakeProvider()

    candidates = await CandidateSource(provider, redis).list_candidates(SNES)

    assert candidates == [Candidate(external_id="1", title="Tetris")]
    assert provider.search_calls == 0


@pytest.mark.asyncio
async def test_candidate_cache_failure_falls_through() -> None:
    redis = MagicMock()
    redis.get_candidates = AsyncMock(side_effect=RedisError("down"))
    redis.set_candidates = AsyncMock(side_effect=RedisError("down"))
    provider = FakeProvider(candidates={SNES: [Candidate(external_id="1", title="Tetris")]})

    candidates = await CandidateSource(provider, redis).list_candidates(SNES)

    assert [c.title for c in candidates] == ["Tetris"]
    assert provider.search_calls == 1


# ── match_batch ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_scenario_e_one_provider_error_does_not_abort_batch() -> None:
    releases = [make_release(i, f"Game Number {i}") for i in range(1, 101)]
    store = FakeCatalogStore(releases)
    provider = FakeProvider(
        candidates={SNES: [Candidate(external_id=str(i), title=f"Game Number {i}") for i in range(1, 101)]},
        fail_calls={37},
    )

    result = await _matcher(store, provider).match_batch(RA, limit=100)

    assert result.processed == 100
    assert len(result.results) == 99
    assert result.error_count == 1
    assert result.errors[0].title == "Game Number 37"
    assert result.errors[0].reason.endswith("request failed")
    assert release_id(37) not in {r.release_id for r in result.results}
    assert result.next_cursor == release_id(100)
    assert result.has_more is False


@pytest.mark.asyncio
async def test_batch_cursor_resumes_without_gaps() -> None:
    releases = [make_release(i, f"Game Number {i}") for i in range(1, 6)]
    store = FakeCatalogStore(releases)
    provider = FakeProvider(candidates={SNES: [Candidate(external_id="x", title="Unrelated Title")]})
    matcher = _matcher(store, provider)

    first = await matcher.match_batch(RA, limit=2)
    second = await matcher.match_batch(RA, cursor=first.next_cursor, limit=2)
    third = await matcher.match_batch(RA, cursor=second.next_cursor, limit=2)

    seen = [r.release_id for page in (first, second, third) for r in page.results]
    assert seen == [release_id(i) for i in range(1, 6)]
    assert first.has_more and second.has_more and not third.has_more
    assert first.skipped == 2


@pytest.mark.asyncio
async def test_batch_errors_are_truncated_but_counted() -> None:
    releases = [make_release(i, f"Game {i}", platform="Atari Jaguar") for i in range(1, 9)]
    result = await _matcher(FakeCatalogStore(releases), FakeProvider()).match_batch(RA)
    assert result.error_count == 8
    assert len(result.errors) == 5
    assert all(e.reason == "Unsupported platform" for e in result.errors)


@pytest.mark.asyncio
async def test_batch_aborts_on_missing_credential() -> None:
    releases = [make_release(i, f"Game {i}") for i in range(1, 4)]
    provider = FakeProvider()
    provider.search_titles = AsyncMock(side_effect=MissingCredential("ra"))
    with pytest.raises(MissingCredential):
        await _matcher(FakeCatalogStore(releases), provider).match_batch(RA)


@pytest.mark.asyncio
async def test_batch_records_unexpected_exceptions() -> None:
    releases = [make_release(i, f"Game {i}") for i in range(1, 3)]
    provider = FakeProvider()
    provider.search_titles = AsyncMock(side_effect=[ValueError("boom"), []])
    result = await _matcher(FakeCatalogStore(releases), provider).match_batch(RA)
    assert result.errors[0].reason == "Exception during mapping"
    assert result.results[0].reason == MatchReason.NO_SEARCH_RESULTS


# ── caller credential fallback ──────────────────────────────────────────

@pytest.mark.asyncio
async def test_search_uses_caller_credential_without_service_account() -> None:
    release = make_release(1, "Chrono Trigger")
    provider = FakeProvider(
        candidates={SNES: [Candidate(external_id="319", title="Chrono Trigger")]}, needs_user_auth=True
    )
    session = FakeSession()

    result = await _matcher(FakeCatalogStore([release]), provider, session=session).match_release(
        release, RA, user_id="user-1"
    )

    assert result.mapped is True
    assert provider.search_auths[0].account == "user-1-account"
    assert session.authorize_calls == 1


@pytest.mark.asyncio
async def test_service_account_search_skips_caller_credential() -> None:
    release = make_release(1, "Chrono Trigger")
    provider = FakeProvider(candidates={SNES: [Candidate(external_id="319", title="Chrono Trigger")]})
    session = FakeSession()

    await _matcher(FakeCatalogStore([release]), provider, session=session).match_release(
        release, RA, user_id="user-1"
    )

    assert provider.search_auths == [None]
    assert session.authorize_calls == 0


@pytest.mark.asyncio
async def test_unlinked_caller_cannot_search() -> None:
    release = make_release(1, "Chrono Trigger")
    provider = FakeProvider(needs_user_auth=True)
    matcher = _matcher(FakeCatalogStore([release]), provider, session=FakeSession(linked=set()))
    with pytest.raises(MissingCredential):
        await matcher.match_release(release, RA, user_id="user-1")
    assert provider.search_calls == 0


@pytest.mark.asyncio
async def test_already_mapped_needs_no_credential() -> None:
    release = make_release(1, "Chrono Trigger")
    store = FakeCatalogStore([release])
    provider = FakeProvider(
        candidates={SNES: [Candidate(external_id="319", title="Chrono Trigger")]}, needs_user_auth=True
    )
    await _matcher(store, provider, session=FakeSession()).match_release(release, RA, user_id="user-1")

    unlinked = FakeSession(linked=set())
    again = await _matcher(store, provider, session=unlinked).match_release(release, RA, user_id="user-1")

    assert again.reason == MatchReason.ALREADY_MAPPED
    assert unlinked.authorize_calls == 0


@pytest.mark.asyncio
async def test_batch_authorizes_caller_once_per_page() -> None:
    releases = [make_release(i, f"Game Number {i}") for i in range(1, 4)]
    provider = FakeProvider(
        candidates={SNES: [Candidate(external_id=str(i), title=f"Game Number {i}") for i in range(1, 4)]},
        needs_user_auth=True,
    )
    session = FakeSession()

    result = await _matcher(FakeCatalogStore(releases), provider, session=session).match_batch(
        RA, user_id="user-1"
    )

    assert result.mapped == 3
    assert session.authorize_calls == 1
    assert all(auth is not None and auth.user_id == "user-1" for auth in provider.search_auths)


@pytest.mark.asyncio
async def test_batch_without_caller_credential_aborts() -> None:
    releases = [make_release(i, f"Game {i}") for i in range(1, 3)]
    provider = FakeProvider(needs_user_auth=True)
    with pytest.raises(MissingCredential):
        await _matcher(FakeCatalogStore(releases), provider, session=FakeSession(linked=set())).match_batch(
            RA, user_id="user-1"
        )
    assert provider.search_calls == 0
