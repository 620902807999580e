"""
Whole-match cache of assembled enrichment results.

Process-wide, in memory, keyed by match id. Entries live for a fixed TTL from
the moment they were written and are expired lazily on read.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

import structlog
from django.conf import settings

from common.time_utils import SYSTEM_CLOCK, Clock

if TYPE_CHECKING:
    from apps.matches.conf import MatchCacheConfig
    from apps.matches.datatype import EnrichmentResult

log = structlog.get_logger(__name__).bind(component="MatchCache")


class MatchCache:
    def __init__(self, config: MatchCacheConfig | None = None, *, clock: Clock = SYSTEM_CLOCK) -> None:
        self.config = config or settings.ENRICHMENT_CONFIG.match_cache
        self.clock = clock
        self._entries: dict[str, EnrichmentResult] = {}

    def __len__(self) -> int:
        self._prune()
        return len(self._entries)

    def __contains__(self, match_id: object) -> bool:
        return isinstance(match_id, str) and self.get(match_id) is not None

    def _expired(self, entry: EnrichmentResult) -> bool:
        return self.clock() - entry.timestamp > self.config.ttl_s

    def get(self, match_id: str) -> EnrichmentResult | None:
        entry = self._entries.get(match_id)
        if entry is None:
            return None
        if self._expired(entry):
            log.debug("entry expired", match_id=match_id)
            del self._entries[match_id]
            return None
        return entry

    def set(self, match_id: str, result: EnrichmentResult) -> EnrichmentResult:
        """Stores `result` stamped with the current time and returns the stored value."""
        entry = dataclasses.replace(result, timestamp=self.clock())
        self._entries[match_id] = entry
        log.debug("entry written", match_id=match_id)
        return entry

    def update(self, match_id: str, **changes: Any) -> EnrichmentResult | None:
        """Patches a live entry in place of the old one; the write time is kept."""
        entry = self.get(match_id)
        if entry is None:
            return None
        changes.pop("timestamp", None)
        patched = dataclasses.replace(entry, **changes)
        self._entries[match_id] = patched
        return patched

    def delete(self, match_id: str) -> None:
        self._entries.pop(match_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def match_ids(self) -> list[str]:
        self._prune()
        return list(self._entries)

    def _prune(self) -> None:
        for match_id in [k for k, v in self._entries.items() if self._expired(v)]:
            del self._entries[match_id]
