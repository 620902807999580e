"""Recently searched match ids, most recent first, persisted in durable storage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from apps.core.conf import STORAGE_KEYS
from apps.matches.conf import SEARCH_HISTORY_LIMIT
from common.cache_utils import get_json, set_json
from common.time_utils import SYSTEM_CLOCK, Clock

if TYPE_CHECKING:
    from apps.core.services.protocols import KeyValueStore

log = structlog.get_logger(__name__).bind(component="SearchHistory")


@dataclass(slots=True, frozen=True)
class HistoryEntry:
    match_id: str
    timestamp: float


class SearchHistory:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        limit: int = SEARCH_HISTORY_LIMIT,
        clock: Clock = SYSTEM_CLOCK,
        key: str = STORAGE_KEYS["search_history"],
    ) -> None:
        self.store = store
        self.limit = limit
        self.clock = clock
        self.key = key

    def entries(self) -> list[HistoryEntry]:
        raw = get_json(self.store, self.key, [])
        if not isinstance(raw, list):
            return []
        out: list[HistoryEntry] = []
        for row in raw:
            try:
                out.append(HistoryEntry(str(row["match_id"]), float(row["timestamp"])))
            except (KeyError, TypeError, ValueError):
                log.debug("skipping malformed history row", row=row)
        return out

    def _save(self, entries: list[HistoryEntry]) -> None:
        set_json(self.store, self.key, [{"match_id": e.match_id, "timestamp": e.timestamp} for e in entries])

    def add(self, match_id: str) -> HistoryEntry:
        """A repeated id moves to the front with a fresh timestamp."""
        entry = HistoryEntry(match_id, self.clock())
        rest = [e for e in self.entries() if e.match_id != match_id]
        self._save([entry, *rest][: self.limit])
        return entry

    def remove(self, match_id: str) -> None:
        self._save([e for e in self.entries() if e.match_id != match_id])

    def contains(self, match_id: str) -> bool:
        return any(e.match_id == match_id for e in self.entries())

    def clear(self) -> None:
        self.store.delete(self.key)
