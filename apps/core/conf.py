"""Core configuration, constants, and Pydantic base models for the entire project."""

from __future__ import annotations

from typing import Final

from pydantic import BaseModel, ConfigDict

from common.cache_utils import build_cache_key

# ─── Constants ──────────────────────────────────────────────────────────────────

DEFAULT_TIMEOUT_S: Final[int] = 30

ASSETS_API_BASE_URL: Final[str] = "https://assets.deadlock-api.com"
PLAYER_DATA_API_BASE_URL: Final[str] = "https://api.deadlock-api.com"

APP_USER_AGENT: Final[str] = "deadlyze-core/0.3 (+https://github.com/deadlyze)"

# HTTP statuses that mean "the backend has nothing for this id"
NOT_FOUND_STATUSES: Final[frozenset[int]] = frozenset({400, 404})
RATE_LIMITED_STATUS: Final[int] = 429

SECONDS_PER_DAY: Final[int] = 24 * 60 * 60

# Durable / session storage keys
STORAGE_KEYS: Final[dict[str, str]] = {
    "rate_limit": build_cache_key("deadlyze", "rate_limit"),
    "attempted_matches": build_cache_key("deadlyze", "attempted_matches"),
    "search_history": build_cache_key("deadlyze", "match_history"),
    "current_user": build_cache_key("deadlyze", "current_user"),
}

# ─── Base Pydantic Models ───────────────────────────────────────────────────────


class BaseServiceConfig(BaseModel):
    """Base Pydantic model for all service configurations."""

    model_config = ConfigDict(frozen=True, validate_assignment=True)


class ApiModel(BaseModel):
    """
    Base for every payload received from a backend. Unknown fields are dropped,
    validated instances are immutable.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)
