"""
Single read path for detailed match metadata.

Cache first, then one shared in-flight request per match id, so the cheater
check and the background preload never fetch the same match twice at once.
Rate-limited lookups go to the retry queue instead of failing.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog
from django.conf import settings

from apps.core.exceptions import ApiError, RateLimitedError
from common.background import BackgroundTasks

if TYPE_CHECKING:
    from collections.abc import Iterable

    from apps.matches.conf import DetailedMatchMetadata, MetadataServiceConfig
    from apps.matches.services.metadata_cache import MetadataCache
    from apps.players.services.player_client import PlayerDataClient

log = structlog.get_logger(__name__).bind(component="MetadataService")


class MatchMetadataService:
    def __init__(
        self,
        client: PlayerDataClient,
        cache: MetadataCache,
        config: MetadataServiceConfig | None = None,
        *,
        tasks: BackgroundTasks | None = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.config = config or settings.ENRICHMENT_CONFIG.metadata
        self.tasks = tasks or BackgroundTasks("metadata-preload")
        self._inflight: dict[int, asyncio.Future[DetailedMatchMetadata | None]] = {}

    async def __call__(self, match_id: int, account_id: int) -> DetailedMatchMetadata | None:
        return await self.get(match_id, account_id)

    async def get(self, match_id: int, account_id: int) -> DetailedMatchMetadata | None:
        """
        `None` for unknown matches and for rate-limited ones (queued for retry).
        Other fetch failures propagate as `ApiError`.
        """
        cached = self.cache.get(match_id, account_id)
        if cached is not None:
            return cached
        try:
            metadata = await self._shared_fetch(match_id)
        except RateLimitedError:
            self.cache.add_to_retry_queue(match_id, account_id)
            self.cache.schedule_drain(self.fetch)
            return None
        if metadata is not None:
            self.cache.set(match_id, account_id, metadata)
        return metadata

    async def fetch(self, match_id: int, account_id: int) -> DetailedMatchMetadata | None:
        """Uncached read used by the retry queue; the queue writes the cache itself."""
        return await self._shared_fetch(match_id)

    async def _shared_fetch(self, match_id: int) -> DetailedMatchMetadata | None:
        future = self._inflight.get(match_id)
        if future is None:
            future = asyncio.ensure_future(self.client.fetch_match_metadata(match_id))
            self._inflight[match_id] = future
            future.add_done_callback(lambda f: self._settle(match_id, f))
        # a cancelled waiter must not cancel the request others share
        return await asyncio.shield(future)

    def _settle(self, match_id: int, future: asyncio.Future) -> None:
        self._inflight.pop(match_id, None)
        if not future.cancelled():
            future.exception()  # marks it retrieved when every waiter has gone

    # ───────────────────────── preload ──────────────────────────
    def preload(self, pairs: Iterable[tuple[int, int]]) -> asyncio.Task | None:
        """
        Best-effort background warm-up for (match id, account id) pairs. Each
        match is fetched once however many accounts reference it.
        """
        by_match: dict[int, list[int]] = {}
        for match_id, account_id in pairs:
            accounts = by_match.setdefault(match_id, [])
            if account_id not in accounts:
                accounts.append(account_id)
        if not by_match:
            return None
        log.debug("preloading metadata", matches=len(by_match))
        return self.tasks.spawn(self._preload(by_match), label="preload")

    async def _preload(self, by_match: dict[int, list[int]]) -> None:
        loaded = 0
        for idx, (match_id, account_ids) in enumerate(by_match.items()):
            if idx and self.config.fetch_delay_s:
                await asyncio.sleep(self.config.fetch_delay_s)
            first, *rest = account_ids
            try:
                metadata = await self.get(match_id, first)
            except ApiError as exc:
                log.debug("preload failed", match_id=match_id, err=str(exc))
                continue
            if metadata is None:
                # rate limited: queue the other accounts too
                if self.cache.is_queued(match_id, first):
                    for account_id in rest:
                        self.cache.add_to_retry_queue(match_id, account_id)
                continue
            loaded += 1
            for account_id in rest:
                self.cache.set(match_id, account_id, metadata)
        log.debug("preload finished", loaded=loaded, requested=len(by_match))

    async def aclose(self) -> None:
        await self.tasks.cancel_all()
