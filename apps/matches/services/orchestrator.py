"""
Match enrichment orchestrator.

`search(match_id)` yields `SearchState`s: `loading` snapshots as data arrives,
then a single terminal `loaded` or `failed`, optionally followed by one more
`loaded` once missing assets have been recovered.

Every run owns a cancellation flag. A new search cancels the previous run and
closing the stream cancels its own; a cancelled run stops between steps and
never writes the match cache. Metadata preloading and the retry queue are
detached from runs and keep going.
"""

from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Self

import structlog
from django.conf import settings

from apps.assets.services.assets_client import AssetsClient, rank_image_url
from apps.core.exceptions import ApiError, MatchLookupError
from apps.core.services.storage import durable_store, session_store
from apps.matches.datatype import EnrichmentResult, SearchState
from apps.matches.services.builds import load_player_build
from apps.matches.services.live_match import RosterFileLookup, is_valid_match_id
from apps.matches.services.match_cache import MatchCache
from apps.matches.services.metadata_cache import MetadataCache
from apps.matches.services.metadata_service import MatchMetadataService
from apps.matches.services.request_budget import RateLimitedRequestBudget
from apps.matches.services.search_history import SearchHistory
from apps.players.services.identity import StoredIdentityProvider
from apps.players.services.party_detector import PartyDetector
from apps.players.services.player_client import PlayerDataClient
from apps.players.services.relations import fetch_relation_stats
from apps.players.services.stats import calculate_match_stats
from apps.players.services.tags import determine_player_tags
from common.background import BackgroundTasks
from common.time_utils import SYSTEM_CLOCK, Clock

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Iterable

    from apps.assets.conf import Rank
    from apps.core.datatype import BudgetSnapshot
    from apps.core.services.protocols import IdentityProvider, LiveMatchLookup
    from apps.matches.conf import MatchData, MatchPlayer, OrchestratorConfig
    from apps.matches.services.builds import PlayerBuild
    from apps.players.conf import PlayerMMR, StatsConfig, TagThresholds
    from apps.players.services.party_detector import PartyGroup
    from apps.players.services.relations import RelationStats
    from apps.players.services.stats import MatchStats
    from apps.players.services.tags import PlayerTag

log = structlog.get_logger(__name__).bind(component="Orchestrator")

# failure reasons surfaced to the UI
INVALID_MATCH_ID = "invalid_match_id"
RATE_LIMITED = "rate_limited"
MATCH_NOT_FOUND = "match_not_found"
ENRICHMENT_FAILED = "enrichment_failed"


class _RunCancelledError(Exception):
    pass


@dataclass(slots=True, eq=False)
class SearchRun:
    match_id: str
    queue: asyncio.Queue[SearchState | None] = field(default_factory=asyncio.Queue)
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    def check(self) -> None:
        if self.cancelled:
            raise _RunCancelledError

    def publish(self, state: SearchState) -> None:
        if not self.cancelled:
            self.queue.put_nowait(state)


@dataclass(slots=True)
class _Partial:
    """Mutable accumulator of one run; frozen into `EnrichmentResult` for every publish."""

    match_data: MatchData
    hero_icon_urls: dict[int, str] = field(default_factory=dict)
    mmr: dict[int, PlayerMMR] = field(default_factory=dict)
    ranks: list[Rank] = field(default_factory=list)
    rank_image_urls: dict[int, str] = field(default_factory=dict)
    match_stats: dict[int, MatchStats] = field(default_factory=dict)
    relation_stats: dict[int, RelationStats] = field(default_factory=dict)
    party_groups: tuple[PartyGroup, ...] = ()
    player_tags: dict[int, tuple[PlayerTag, ...]] = field(default_factory=dict)

    def freeze(self) -> EnrichmentResult:
        return EnrichmentResult(
            match_data=self.match_data,
            hero_icon_urls=dict(self.hero_icon_urls),
            mmr=dict(self.mmr),
            rank_image_urls=dict(self.rank_image_urls),
            match_stats=dict(self.match_stats),
            relation_stats=dict(self.relation_stats),
            party_groups=self.party_groups,
            player_tags=dict(self.player_tags),
        )


class MatchEnrichmentOrchestrator:
    def __init__(
        self,
        *,
        lookup: LiveMatchLookup,
        assets: AssetsClient,
        players: PlayerDataClient,
        match_cache: MatchCache,
        metadata: MatchMetadataService,
        budget: RateLimitedRequestBudget,
        history: SearchHistory,
        identity: IdentityProvider | None = None,
        party_detector: PartyDetector | None = None,
        config: OrchestratorConfig | None = None,
        stats_config: StatsConfig | None = None,
        thresholds: TagThresholds | None = None,
        clock: Clock = SYSTEM_CLOCK,
    ) -> None:
        enrichment = settings.ENRICHMENT_CONFIG
        self.lookup = lookup
        self.assets = assets
        self.players = players
        self.match_cache = match_cache
        self.metadata = metadata
        self.budget = budget
        self.history = history
        self.identity = identity
        self.party_detector = party_detector or PartyDetector(players, clock=clock)
        self.config = config or enrichment.orchestrator
        self.stats_config = stats_config or enrichment.stats
        self.thresholds = thresholds or enrichment.tags
        self.clock = clock
        self.tasks = BackgroundTasks("search")
        self._current: SearchRun | None = None

    # ───────────────────────── read-only getters ──────────────────────────
    def cached(self, match_id: str) -> EnrichmentResult | None:
        return self.match_cache.get(match_id)

    def budget_snapshot(self) -> BudgetSnapshot:
        return {
            "available_requests": self.budget.available_requests(),
            "max_requests": self.budget.max_requests,
            "seconds_until_restore": self.budget.seconds_until_restore(),
            "retry_queue_size": self.metadata.cache.retry_queue_size,
            "cached_matches": len(self.match_cache),
        }

    async def player_build(self, match_id: int, account_id: int) -> PlayerBuild | None:
        """Item build of one player in a past match; shares the metadata cache and retry queue."""
        return await load_player_build(self.metadata, self.assets, match_id, account_id)

    # ───────────────────────── search ──────────────────────────
    def cancel_current(self) -> None:
        if self._current is not None:
            log.debug("search superseded", match_id=self._current.match_id)
            self._current.cancel()
            self._current = None

    async def search(self, match_id: str) -> AsyncIterator[SearchState]:
        self.cancel_current()
        run = SearchRun(match_id.strip())
        self._current = run
        self.tasks.spawn(self._run(run), label=f"run:{run.match_id}")
        try:
            while True:
                state = await run.queue.get()
                if state is None:
                    return
                yield state
        finally:
            run.cancel()
            if self._current is run:
                self._current = None

    async def _run(self, run: SearchRun) -> None:
        try:
            await self._execute(run)
        except _RunCancelledError:
            log.debug("run cancelled", match_id=run.match_id)
        except Exception:
            log.exception("enrichment failed", match_id=run.match_id)
            run.publish(SearchState(status="failed", match_id=run.match_id, reason=ENRICHMENT_FAILED))
        finally:
            run.queue.put_nowait(None)

    async def _execute(self, run: SearchRun) -> None:
        match_id = run.match_id
        bound = log.bind(match_id=match_id)

        if not is_valid_match_id(match_id):
            run.publish(SearchState(status="failed", match_id=match_id, reason=INVALID_MATCH_ID))
            return

        # 1. whole-match cache
        cached = self.match_cache.get(match_id)
        if cached is not None:
            bound.info("served from cache")
            self.history.add(match_id)
            run.publish(SearchState(status="loaded", match_id=match_id, data=cached, from_cache=True))
            return

        if not self.budget.consume(match_id):
            run.publish(SearchState(status="failed", match_id=match_id, reason=RATE_LIMITED))
            return

        # 2. live roster
        run.publish(SearchState(status="loading", match_id=match_id))
        try:
            match_data = await self.lookup.fetch_match_data(match_id)
        except MatchLookupError as exc:
            bound.warning("roster lookup failed", err=str(exc))
            run.publish(SearchState(status="failed", match_id=match_id, reason=MATCH_NOT_FOUND))
            return
        run.check()

        partial = _Partial(match_data=match_data)
        roster = match_data.players
        account_ids = match_data.account_ids

        # 3. parties in the background; icons, ranks and MMR awaited
        party_task = asyncio.create_task(self.party_detector.detect(roster))
        try:
            icons, mmr, ranks = await asyncio.gather(
                self.assets.fetch_hero_icon_urls(match_data.hero_ids),
                self.players.fetch_mmr(account_ids),
                _absorb(self.assets.fetch_ranks(), [], what="ranks"),
            )
            run.check()
            partial.hero_icon_urls.update(icons)
            partial.mmr.update(mmr)
            partial.ranks = ranks
            partial.rank_image_urls.update(_rank_urls(mmr, ranks))
            run.publish(SearchState(status="loading", match_id=match_id, data=partial.freeze()))

            # 4. per-player history, stats and tags
            per_player = await asyncio.gather(*(self._player_stats(p) for p in roster))
            run.check()
            for player, (stats, tags) in zip(roster, per_player, strict=True):
                if stats is not None:
                    partial.match_stats[player.account_id] = stats
                    partial.player_tags[player.account_id] = tags
            run.publish(SearchState(status="loading", match_id=match_id, data=partial.freeze()))

            # 5. heroes only seen in recent histories
            extra_heroes = _history_hero_ids(partial.match_stats.values()) - partial.hero_icon_urls.keys()
            if extra_heroes:
                partial.hero_icon_urls.update(await self.assets.fetch_hero_icon_urls(sorted(extra_heroes)))
                run.check()

            # 6. relation to the viewing user
            user = self.identity.current_user() if self.identity else None
            if user is not None:
                partial.relation_stats = await fetch_relation_stats(self.players, user.account_id, account_ids)
                run.check()

            # 7. parties
            partial.party_groups = tuple(await party_task)
            run.check()
        finally:
            if not party_task.done():
                party_task.cancel()

        # 8. single cache write
        entry = self.match_cache.set(match_id, partial.freeze())
        self.history.add(match_id)
        bound.info(
            "match enriched",
            players=len(roster),
            stats=len(partial.match_stats),
            parties=len(partial.party_groups),
        )
        run.publish(SearchState(status="loaded", match_id=match_id, data=entry))

        # 10. detached metadata warm-up
        self.metadata.preload(
            (m.match_id, account_id)
            for account_id, stats in partial.match_stats.items()
            for m in stats.last_matches
        )

        # 9. second chance for assets
        await self._retry_assets(run, partial)

    async def _player_stats(self, player: MatchPlayer) -> tuple[MatchStats | None, tuple[PlayerTag, ...]]:
        try:
            history = await self.players.fetch_match_history(player.account_id)
        except ApiError as exc:
            log.warning("match history unavailable", account_id=player.account_id, err=str(exc))
            return None, ()
        if history is None:
            return None, ()
        stats = calculate_match_stats(history, player.hero_id, now=self.clock(), config=self.stats_config)
        tags = await determine_player_tags(
            stats,
            player.hero_id,
            player.account_id,
            fetch_metadata=self.metadata,
            thresholds=self.thresholds,
            delay_s=self.metadata.config.fetch_delay_s,
            stat_id=self.metadata.config.headshot_stat_id,
        )
        return stats, tuple(tags)

    async def _retry_assets(self, run: SearchRun, partial: _Partial) -> None:
        roster = partial.match_data
        wanted_heroes = set(roster.hero_ids) | _history_hero_ids(partial.match_stats.values())
        missing_heroes = sorted(wanted_heroes - partial.hero_icon_urls.keys())
        missing_mmr = [a for a in roster.account_ids if a not in partial.mmr]
        if not missing_heroes and not missing_mmr and partial.ranks:
            return

        log.debug("retrying assets", heroes=len(missing_heroes), mmr=len(missing_mmr))
        await asyncio.sleep(self.config.asset_retry_delay_s)
        run.check()

        icons, mmr, ranks = await asyncio.gather(
            self.assets.fetch_hero_icon_urls(missing_heroes) if missing_heroes else _done({}),
            self.players.fetch_mmr(missing_mmr) if missing_mmr else _done({}),
            _absorb(self.assets.fetch_ranks(), [], what="ranks") if not partial.ranks else _done(partial.ranks),
        )
        run.check()

        before = len(partial.hero_icon_urls), len(partial.rank_image_urls)
        partial.hero_icon_urls.update(icons)
        partial.mmr.update(mmr)
        partial.ranks = ranks
        partial.rank_image_urls.update(_rank_urls(partial.mmr, ranks))
        if (len(partial.hero_icon_urls), len(partial.rank_image_urls)) == before and not mmr:
            return

        changes: dict[str, Any] = {
            "hero_icon_urls": dict(partial.hero_icon_urls),
            "mmr": dict(partial.mmr),
            "rank_image_urls": dict(partial.rank_image_urls),
        }
        entry = self.match_cache.update(run.match_id, **changes)
        if entry is None:
            entry = dataclasses.replace(partial.freeze(), timestamp=self.clock())
        run.publish(SearchState(status="loaded", match_id=run.match_id, data=entry))

    # ───────────────────────── lifecycle ──────────────────────────
    async def aclose(self) -> None:
        self.cancel_current()
        await self.tasks.cancel_all()
        await self.metadata.aclose()
        await self.metadata.cache.aclose()
        await self.assets.aclose()
        await self.players.aclose()

    @classmethod
    def from_settings(cls, *, clock: Clock = SYSTEM_CLOCK) -> Self:
        """Production wiring: settings-backed clients, durable and session stores, roster files."""
        enrichment = settings.ENRICHMENT_CONFIG
        players = PlayerDataClient()
        metadata_cache = MetadataCache(enrichment.metadata_cache, clock=clock)
        store = durable_store()
        return cls(
            lookup=RosterFileLookup.from_settings(),
            assets=AssetsClient(assets_config=enrichment.assets),
            players=players,
            match_cache=MatchCache(enrichment.match_cache, clock=clock),
            metadata=MatchMetadataService(players, metadata_cache, enrichment.metadata),
            budget=RateLimitedRequestBudget(store, session_store(), enrichment.budget, clock=clock),
            history=SearchHistory(store, limit=enrichment.orchestrator.history_limit, clock=clock),
            identity=StoredIdentityProvider(store),
            party_detector=PartyDetector(players, enrichment.party, clock=clock),
            clock=clock,
        )


# ─── helpers ──────────────────────────────────────────────────────────────────


async def _absorb[T](aw: Awaitable[T], default: T, *, what: str) -> T:
    try:
        return await aw
    except ApiError as exc:
        log.warning("lookup failed", what=what, err=str(exc))
        return default


async def _done[T](value: T) -> T:
    return value


def _rank_urls(mmr: dict[int, PlayerMMR], ranks: list[Rank]) -> dict[int, str]:
    urls: dict[int, str] = {}
    for account_id, row in mmr.items():
        url = rank_image_url(row.division, row.division_tier, ranks)
        if url:
            urls[account_id] = url
    return urls


def _history_hero_ids(all_stats: Iterable[MatchStats]) -> set[int]:
    return {m.hero_id for stats in all_stats for m in stats.last_matches}
