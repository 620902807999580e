"""
Per-(match, account) metadata cache plus the bounded retry queue for lookups
that hit the backend's rate limit.

The queue is drained by a background pass that reschedules itself while work
remains; it is not tied to any search and outlives cancelled ones.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from django.conf import settings

from apps.core.exceptions import ApiError
from common.background import BackgroundTasks
from common.time_utils import SYSTEM_CLOCK, Clock

if TYPE_CHECKING:
    from apps.core.services.protocols import MetadataFetcher
    from apps.matches.conf import DetailedMatchMetadata, MetadataCacheConfig

log = structlog.get_logger(__name__).bind(component="MetadataCache")

type MetadataKey = tuple[int, int]


@dataclass(slots=True, frozen=True)
class RetryQueueItem:
    match_id: int
    account_id: int
    retry_count: int = 0

    @property
    def key(self) -> MetadataKey:
        return (self.match_id, self.account_id)


@dataclass(slots=True, frozen=True)
class _Entry:
    metadata: DetailedMatchMetadata
    timestamp: float


class MetadataCache:
    def __init__(
        self,
        config: MetadataCacheConfig | None = None,
        *,
        clock: Clock = SYSTEM_CLOCK,
        tasks: BackgroundTasks | None = None,
    ) -> None:
        self.config = config or settings.ENRICHMENT_CONFIG.metadata_cache
        self.clock = clock
        self.tasks = tasks or BackgroundTasks("metadata-retry")
        self._entries: dict[MetadataKey, _Entry] = {}
        # insertion-ordered; one item per key
        self._queue: dict[MetadataKey, RetryQueueItem] = {}
        self._processing = False
        self._drain_scheduled = False
        # bumped by clear(); a pass started before it must not requeue
        self._generation = 0

    # ───────────────────────── cache ──────────────────────────
    def __len__(self) -> int:
        return len(self._entries)

    def get(self, match_id: int, account_id: int) -> DetailedMatchMetadata | None:
        key = (match_id, account_id)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() - entry.timestamp > self.config.ttl_s:
            del self._entries[key]
            return None
        return entry.metadata

    def set(self, match_id: int, account_id: int, metadata: DetailedMatchMetadata) -> None:
        self._entries[(match_id, account_id)] = _Entry(metadata, self.clock())

    def delete(self, match_id: int, account_id: int) -> None:
        self._entries.pop((match_id, account_id), None)

    def clear(self) -> None:
        """Drops cached entries and pending retries, including those of a running drain pass."""
        self._entries.clear()
        self._queue.clear()
        self._generation += 1

    # ───────────────────────── retry queue ──────────────────────────
    @property
    def retry_queue_size(self) -> int:
        return len(self._queue)

    def retry_queue(self) -> list[RetryQueueItem]:
        return list(self._queue.values())

    def is_queued(self, match_id: int, account_id: int) -> bool:
        return (match_id, account_id) in self._queue

    def add_to_retry_queue(self, match_id: int, account_id: int) -> bool:
        """Returns False when the key is already queued."""
        item = RetryQueueItem(match_id, account_id)
        if item.key in self._queue:
            return False
        self._queue[item.key] = item
        log.debug("queued for retry", match_id=match_id, account_id=account_id, queue=len(self._queue))
        return True

    async def process_retry_queue(self, fetch_fn: MetadataFetcher) -> None:
        """
        One pass over a snapshot of the queue, one attempt per item, spaced by
        `retry_delay_s`. A call made while a pass is running does nothing.
        """
        if self._processing:
            return
        self._processing = True
        try:
            batch = list(self._queue.values())
            self._queue.clear()
            generation = self._generation
            for item in batch:
                if generation != self._generation:
                    break
                await self._attempt(item, fetch_fn, generation)
        finally:
            self._processing = False

        if self._queue:
            self.schedule_drain(fetch_fn, delay_s=self.config.reschedule_delay_s)

    async def _attempt(self, item: RetryQueueItem, fetch_fn: MetadataFetcher, generation: int) -> None:
        if self.config.retry_delay_s:
            await asyncio.sleep(self.config.retry_delay_s)
        try:
            metadata = await fetch_fn(item.match_id, item.account_id)
        except ApiError as exc:
            log.debug("retry attempt failed", match_id=item.match_id, attempt=item.retry_count + 1, err=str(exc))
            metadata = None
        except Exception:
            log.warning(
                "retry attempt raised",
                match_id=item.match_id,
                attempt=item.retry_count + 1,
                exc_info=True,
            )
            metadata = None

        if generation != self._generation:
            return
        if metadata is not None:
            self.set(item.match_id, item.account_id, metadata)
            return

        next_count = item.retry_count + 1
        if next_count >= self.config.max_retry_count:
            log.warning("retries exhausted, dropping", match_id=item.match_id, account_id=item.account_id)
            return
        # a fresh add during the pass wins over the requeue
        self._queue.setdefault(item.key, RetryQueueItem(item.match_id, item.account_id, next_count))

    def schedule_drain(self, fetch_fn: MetadataFetcher, *, delay_s: float = 0.0) -> None:
        """Starts a background drain pass unless one is already waiting to start."""
        if self._drain_scheduled:
            return
        self._drain_scheduled = True
        self.tasks.spawn(self._delayed_drain(fetch_fn, delay_s), label="drain")

    async def _delayed_drain(self, fetch_fn: MetadataFetcher, delay_s: float) -> None:
        try:
            if delay_s:
                await asyncio.sleep(delay_s)
        finally:
            self._drain_scheduled = False
        await self.process_retry_queue(fetch_fn)

    async def aclose(self) -> None:
        await self.tasks.cancel_all()
