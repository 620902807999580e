import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from apps.assets.conf import Rank
from apps.core.datatype import CurrentUser
from apps.core.exceptions import FetchFailedError, MatchLookupError
from apps.core.services.storage import durable_store, session_store
from apps.matches.conf import (
    MatchCacheConfig,
    MetadataCacheConfig,
    MetadataServiceConfig,
    OrchestratorConfig,
    RequestBudgetConfig,
)
from apps.matches.services.match_cache import MatchCache
from apps.matches.services.metadata_cache import MetadataCache
from apps.matches.services.metadata_service import MatchMetadataService
from apps.matches.services.orchestrator import MatchEnrichmentOrchestrator
from apps.matches.services.request_budget import RateLimitedRequestBudget
from apps.matches.services.search_history import SearchHistory
from apps.players.conf import MatchHistoryItem, MateStats, PartyDetectionConfig, PlayerMMR
from apps.players.services.party_detector import PartyDetector

MATCH_ID = "12345678"
TTL = 3600
EXTRA_HERO = 99


def _icons(ids):
    return {i: f"https://img/h{i}.webp" for i in ids}


def _history(clock):
    def fetch(account_id):
        hero_id = account_id % 100 + (10 if account_id > 200 else 0)
        return [
            MatchHistoryItem(
                match_id=9000 + n,
                match_result=2 if n % 2 else 3,
                player_team=2,
                start_time=int(clock()) - 600 * (n + 1),
                hero_id=hero_id if n else EXTRA_HERO,
            )
            for n in range(3)
        ]

    return fetch


@pytest.fixture
def lookup(match_data):
    mock = MagicMock()
    mock.fetch_match_data = AsyncMock(return_value=match_data())
    return mock


@pytest.fixture
def assets():
    mock = AsyncMock()
    mock.fetch_hero_icon_urls = AsyncMock(side_effect=_icons)
    mock.fetch_ranks = AsyncMock(
        return_value=[Rank(tier=5, name="Ritualist", images={"small_subrank2_webp": "https://img/r5-2.webp"})],
    )
    return mock


@pytest.fixture
def players(clock):
    mock = AsyncMock()
    mock.fetch_mmr = AsyncMock(
        side_effect=lambda ids: {i: PlayerMMR(account_id=i, division=5, division_tier=2) for i in ids},
    )
    mock.fetch_match_history = AsyncMock(side_effect=_history(clock))
    mock.fetch_mate_stats = AsyncMock(return_value=[])
    mock.fetch_enemy_stats = AsyncMock(return_value=[])
    mock.fetch_match_metadata = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def identity():
    mock = MagicMock()
    mock.current_user.return_value = None
    return mock


@pytest.fixture
async def build(clock, lookup, assets, players, identity):
    created: list[MatchEnrichmentOrchestrator] = []

    def factory(**overrides) -> MatchEnrichmentOrchestrator:
        metadata_cache = MetadataCache(MetadataCacheConfig(retry_delay_s=0, reschedule_delay_s=0), clock=clock)
        kwargs = {
            "lookup": lookup,
            "assets": assets,
            "players": players,
            "match_cache": MatchCache(MatchCacheConfig(ttl_s=TTL), clock=clock),
            "metadata": MatchMetadataService(players, metadata_cache, MetadataServiceConfig(fetch_delay_s=0)),
            "budget": RateLimitedRequestBudget(durable_store(), session_store(), RequestBudgetConfig(), clock=clock),
            "history": SearchHistory(durable_store(), clock=clock),
            "identity": identity,
            "party_detector": PartyDetector(players, PartyDetectionConfig(mate_stats_delay_s=0), clock=clock),
            "config": OrchestratorConfig(asset_retry_delay_s=0),
            "clock": clock,
        }
        kwargs.update(overrides)
        orchestrator = MatchEnrichmentOrchestrator(**kwargs)
        created.append(orchestrator)
        return orchestrator

    yield factory
    for orchestrator in created:
        await orchestrator.aclose()


async def _collect(orchestrator, match_id=MATCH_ID):
    return [state async for state in orchestrator.search(match_id)]


async def test_full_pipeline(build, clock, assets):
    orchestrator = build()

    states = await _collect(orchestrator)

    assert [s.status for s in states] == ["loading", "loading", "loading", "loaded"]
    result = states[-1].data
    assert len(result.match_stats) == 12
    assert set(result.player_tags) == set(result.match_stats)
    assert EXTRA_HERO in result.hero_icon_urls
    assert result.rank_image_urls[101] == "https://img/r5-2.webp"
    assert result.party_groups == ()
    assert result.relation_stats == {}
    assert result.timestamp == clock()

    assert orchestrator.cached(MATCH_ID) is result
    assert orchestrator.history.contains(MATCH_ID)
    assert orchestrator.budget.available_requests() == 9
    # the extra hero is fetched in its own batch
    assert assets.fetch_hero_icon_urls.await_args_list[-1].args == ([EXTRA_HERO],)


async def test_preload_fetches_each_history_match_once(build, players):
    orchestrator = build()

    await _collect(orchestrator)
    await orchestrator.metadata.tasks.drain(timeout=2)

    fetched = [c.args[0] for c in players.fetch_match_metadata.await_args_list]
    assert sorted(fetched) == [9000, 9001, 9002]


async def test_cached_match_makes_no_network_calls(build, lookup, assets, players):
    orchestrator = build()
    await _collect(orchestrator)
    calls = (
        lookup.fetch_match_data.await_count,
        assets.fetch_hero_icon_urls.await_count,
        players.fetch_match_history.await_count,
        players.fetch_mmr.await_count,
    )

    states = await _collect(orchestrator)

    assert [(s.status, s.from_cache) for s in states] == [("loaded", True)]
    assert calls == (
        lookup.fetch_match_data.await_count,
        assets.fetch_hero_icon_urls.await_count,
        players.fetch_match_history.await_count,
        players.fetch_mmr.await_count,
    )


async def test_expired_match_is_enriched_again(build, lookup, clock):
    orchestrator = build()
    await _collect(orchestrator)
    first = orchestrator.cached(MATCH_ID).timestamp

    clock.advance(TTL + 1)
    states = await _collect(orchestrator)

    assert states[-1].status == "loaded"
    assert not states[-1].from_cache
    assert lookup.fetch_match_data.await_count == 2
    assert orchestrator.cached(MATCH_ID).timestamp == first + TTL + 1


async def test_failure_in_relation_step_writes_nothing(build, identity, players):
    identity.current_user.return_value = CurrentUser(steam_id64="76561197960265829", account_id=101)
    players.fetch_enemy_stats.side_effect = RuntimeError("unexpected payload")
    orchestrator = build()

    assert orchestrator.cached(MATCH_ID) is None
    states = await _collect(orchestrator)

    assert states[-1].status == "failed"
    assert states[-1].reason == "enrichment_failed"
    assert orchestrator.cached(MATCH_ID) is None
    assert not orchestrator.history.contains(MATCH_ID)


async def test_relation_stats_for_known_user(build, identity, players):
    identity.current_user.return_value = CurrentUser(steam_id64="76561197960265829", account_id=101)
    players.fetch_mate_stats.return_value = [MateStats(mate_id=102, matches_played=4, wins=3)]
    orchestrator = build()

    result = (await _collect(orchestrator))[-1].data

    assert set(result.relation_stats) == {a for a in result.match_data.account_ids if a != 101}
    assert result.relation_stats[102].with_player.losses == 1


async def test_parties_are_part_of_the_result(build, players):
    async def mates(account_id, *, min_unix_timestamp=None):
        pairs = {101: [102], 102: [101]}
        return [MateStats(mate_id=m) for m in pairs.get(account_id, [])]

    players.fetch_mate_stats.side_effect = mates
    orchestrator = build()

    result = (await _collect(orchestrator))[-1].data

    assert [g.members for g in result.party_groups] == [(101, 102)]
    assert result.party_of(102).party_id == "party-0"


async def test_invalid_match_id(build, lookup):
    states = await _collect(build(), "12ab")

    assert [(s.status, s.reason) for s in states] == [("failed", "invalid_match_id")]
    lookup.fetch_match_data.assert_not_awaited()


async def test_budget_refusal(build):
    orchestrator = build(
        budget=RateLimitedRequestBudget(durable_store(), session_store(), RequestBudgetConfig(max_requests=1)),
    )
    await _collect(orchestrator, "11111111")

    states = await _collect(orchestrator, "22222222")

    assert [(s.status, s.reason) for s in states] == [("failed", "rate_limited")]


async def test_roster_failure_is_fatal(build, lookup):
    lookup.fetch_match_data.side_effect = MatchLookupError("match not found")
    orchestrator = build()

    states = await _collect(orchestrator)

    assert [(s.status, s.reason) for s in states] == [("loading", None), ("failed", "match_not_found")]
    assert orchestrator.cached(MATCH_ID) is None


async def test_partial_failures_leave_gaps(build, players):
    players.fetch_match_history.side_effect = FetchFailedError("down")
    orchestrator = build()

    result = (await _collect(orchestrator))[-1].data

    assert result.match_stats == {}
    assert orchestrator.cached(MATCH_ID) is result


async def test_missing_assets_are_retried_after_loaded(build, assets):
    attempts = {"n": 0}

    async def flaky_icons(ids):
        attempts["n"] += 1
        ids = list(ids)
        # hero 1 fails on the first batch only
        return _icons(i for i in ids if i != 1 or attempts["n"] > 1)

    assets.fetch_hero_icon_urls.side_effect = flaky_icons
    orchestrator = build()

    states = await _collect(orchestrator)

    assert [s.status for s in states][-2:] == ["loaded", "loaded"]
    assert 1 not in states[-2].data.hero_icon_urls
    assert 1 in states[-1].data.hero_icon_urls
    assert 1 in orchestrator.cached(MATCH_ID).hero_icon_urls


async def test_closing_the_stream_cancels_the_run(build, lookup, match_data):
    gate = asyncio.Event()

    async def slow_lookup(match_id):
        await gate.wait()
        return match_data()

    lookup.fetch_match_data.side_effect = slow_lookup
    orchestrator = build()

    stream = orchestrator.search(MATCH_ID)
    first = await anext(stream)
    await stream.aclose()
    gate.set()
    await orchestrator.tasks.drain(timeout=2)

    assert first.status == "loading"
    assert orchestrator.cached(MATCH_ID) is None


async def test_new_search_supersedes_the_previous(build, lookup, match_data):
    gate = asyncio.Event()

    async def slow_lookup(match_id):
        await gate.wait()
        return match_data()

    lookup.fetch_match_data.side_effect = slow_lookup
    orchestrator = build()

    old = orchestrator.search("11111111")
    assert (await anext(old)).status == "loading"

    new = orchestrator.search("22222222")
    assert (await anext(new)).status == "loading"
    gate.set()
    rest_new = [s async for s in new]
    rest_old = [s async for s in old]

    assert rest_new[-1].status == "loaded"
    assert rest_old == []
    assert orchestrator.cached("11111111") is None
    assert orchestrator.cached("22222222") is not None


async def test_budget_snapshot(build):
    orchestrator = build()
    await _collect(orchestrator)

    assert orchestrator.budget_snapshot() == {
        "available_requests": 9,
        "max_requests": 10,
        "seconds_until_restore": 180,
        "retry_queue_size": 0,
        "cached_matches": 1,
    }
