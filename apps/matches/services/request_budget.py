"""
Budget for live-match ("spectator") lookups.

The upstream allows a handful of such lookups per half hour. Locally this is a
bucket of `max_requests` units regaining one unit per `restore_interval_s`
since the last consumption. A match id already paid for in this session is
always allowed again for free.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Self

import structlog
from django.conf import settings

from apps.core.conf import STORAGE_KEYS
from common.cache_utils import get_json, set_json
from common.time_utils import SYSTEM_CLOCK, Clock

if TYPE_CHECKING:
    from apps.core.services.protocols import KeyValueStore
    from apps.matches.conf import RequestBudgetConfig

log = structlog.get_logger(__name__).bind(component="RequestBudget")


@dataclass(slots=True)
class RateLimitState:
    available_requests: int
    last_request_time: float
    timestamps: list[float] = field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: object, *, max_requests: int, now: float) -> Self:
        """Missing or malformed fields fall back to "full budget, nothing consumed"."""
        data = raw if isinstance(raw, dict) else {}
        available = data.get("available_requests")
        last = data.get("last_request_time")
        stamps = data.get("timestamps")
        return cls(
            available_requests=available if isinstance(available, int) else max_requests,
            last_request_time=float(last) if isinstance(last, int | float) else now,
            timestamps=[float(t) for t in stamps if isinstance(t, int | float)] if isinstance(stamps, list) else [],
        )


class RateLimitedRequestBudget:
    def __init__(
        self,
        store: KeyValueStore,
        session: KeyValueStore,
        config: RequestBudgetConfig | None = None,
        *,
        clock: Clock = SYSTEM_CLOCK,
        state_key: str = STORAGE_KEYS["rate_limit"],
        attempted_key: str = STORAGE_KEYS["attempted_matches"],
    ) -> None:
        self.store = store
        self.session = session
        self.config = config or settings.ENRICHMENT_CONFIG.budget
        self.clock = clock
        self.state_key = state_key
        self.attempted_key = attempted_key

    @property
    def max_requests(self) -> int:
        return self.config.max_requests

    # ───────────────────────── persistence ──────────────────────────
    def _load(self) -> RateLimitState:
        raw = get_json(self.store, self.state_key)
        state = RateLimitState.from_raw(raw, max_requests=self.max_requests, now=self.clock())
        state.available_requests = max(0, min(state.available_requests, self.max_requests))
        return state

    def _save(self, state: RateLimitState) -> None:
        set_json(self.store, self.state_key, asdict(state))

    def _attempted(self) -> set[str]:
        raw = get_json(self.session, self.attempted_key, [])
        return {str(k) for k in raw} if isinstance(raw, list) else set()

    # ───────────────────────── restore ──────────────────────────
    def _restore(self, state: RateLimitState) -> bool:
        """Credits whole elapsed intervals. `last_request_time` advances by those intervals only."""
        now = self.clock()
        interval = self.config.restore_interval_s
        elapsed = int((now - state.last_request_time) // interval)
        cutoff = now - self.config.window_s
        pruned = [t for t in state.timestamps if t > cutoff]
        changed = len(pruned) != len(state.timestamps)
        state.timestamps = pruned
        if elapsed > 0:
            state.available_requests = min(state.available_requests + elapsed, self.max_requests)
            state.last_request_time += elapsed * interval
            changed = True
        return changed

    # ───────────────────────── public API ──────────────────────────
    def available_requests(self) -> int:
        state = self._load()
        if self._restore(state):
            self._save(state)
        return state.available_requests

    def can_consume(self, key: str) -> bool:
        return key in self._attempted() or self.available_requests() > 0

    def consume(self, key: str) -> bool:
        attempted = self._attempted()
        if key in attempted:
            return True

        state = self._load()
        restored = self._restore(state)
        if state.available_requests <= 0:
            if restored:
                self._save(state)
            log.info("request budget exhausted", key=key)
            return False

        now = self.clock()
        state.available_requests -= 1
        state.last_request_time = now
        state.timestamps.append(now)
        self._save(state)

        attempted.add(key)
        set_json(self.session, self.attempted_key, sorted(attempted))
        log.debug("request consumed", key=key, remaining=state.available_requests)
        return True

    def seconds_until_restore(self) -> float:
        """0 when the budget is full, else the time until the next unit comes back."""
        state = self._load()
        if self._restore(state):
            self._save(state)
        if state.available_requests >= self.max_requests:
            return 0.0
        remaining = self.config.restore_interval_s - (self.clock() - state.last_request_time)
        return max(0.0, remaining)

    def display_seconds_until_restore(self) -> float:
        """Countdown for the shell indicator, padded by the display margin."""
        remaining = self.seconds_until_restore()
        return remaining + self.config.display_margin_s if remaining else 0.0

    def recent_requests(self) -> int:
        """Consumptions inside the rolling window."""
        state = self._load()
        self._restore(state)
        return len(state.timestamps)

    def reset(self) -> None:
        self.store.delete(self.state_key)
        self.session.delete(self.attempted_key)
