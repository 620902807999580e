"""Core data types and type definitions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, TypedDict

# Type aliases for better clarity
type JsonValue = str | int | float | bool | None | list[JsonValue] | dict[str, JsonValue]
type JsonDict = dict[str, JsonValue]
type AccountId = int
type HeroId = int

type SearchStatus = Literal["idle", "loading", "loaded", "failed"]

# Offset between a SteamID64 and the 32-bit account id used by the game APIs.
STEAM_ID64_BASE = 76561197960265728


# ─── Identity ─────────────────────────────


@dataclass(slots=True, frozen=True, kw_only=True)
class CurrentUser:
    """The locally detected player."""

    steam_id64: str
    account_id: AccountId
    persona_name: str | None = None


# ─── Read-only snapshots for the UI layer ─────────────────────


class BudgetSnapshot(TypedDict):
    """Current request-budget and queue state."""

    available_requests: int
    max_requests: int
    seconds_until_restore: float
    retry_queue_size: int
    cached_matches: int
