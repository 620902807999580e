"""Configuration, constants, and Pydantic models for the 'matches' app."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Final

from pydantic import Field, field_validator, model_validator

from apps.core.conf import ApiModel, BaseServiceConfig

# ─── Domain Constants ─────────────────────────────────────────────────────────
AMBER_TEAM: Final[int] = 2
SAPPHIRE_TEAM: Final[int] = 3
TEAM_NAMES: Final[dict[int, str]] = {AMBER_TEAM: "amber", SAPPHIRE_TEAM: "sapphire"}

MATCH_ID_RE: Final[re.Pattern[str]] = re.compile(r"^\d{8}$")

HEADSHOT_CUSTOM_STAT_ID: Final[int] = 13
MAX_BUILD_SLOTS: Final[int] = 12

# ─── Cache / Retry Defaults ───────────────────────────────────────────────────
CACHE_TTL_S: Final[int] = 60 * 60
METADATA_RETRY_DELAY_S: Final[float] = 0.3
METADATA_MAX_RETRY_COUNT: Final[int] = 3
METADATA_RESCHEDULE_DELAY_S: Final[float] = 1.0
MATCH_METADATA_DELAY_S: Final[float] = 0.001

# ─── Spectator Request Budget ─────────────────────────────────────────────────
MAX_SPECTATOR_REQUESTS: Final[int] = 10
RESTORE_INTERVAL_S: Final[int] = 3 * 60
# The indicator in the shell counts down a little longer than the real interval.
RESTORE_DISPLAY_MARGIN_S: Final[int] = 3
RATE_WINDOW_S: Final[int] = 30 * 60

SEARCH_HISTORY_LIMIT: Final[int] = 50
ASSET_RETRY_DELAY_S: Final[float] = 1.0


# ─── Pydantic Configuration Models ────────────────────────────────────────────


class MatchCacheConfig(BaseServiceConfig):
    ttl_s: float = Field(default=CACHE_TTL_S, gt=0)


class MetadataCacheConfig(BaseServiceConfig):
    ttl_s: float = Field(default=CACHE_TTL_S, gt=0)
    retry_delay_s: float = Field(default=METADATA_RETRY_DELAY_S, ge=0)
    max_retry_count: int = Field(default=METADATA_MAX_RETRY_COUNT, ge=1)
    reschedule_delay_s: float = Field(default=METADATA_RESCHEDULE_DELAY_S, ge=0)


class MetadataServiceConfig(BaseServiceConfig):
    fetch_delay_s: float = Field(default=MATCH_METADATA_DELAY_S, ge=0)
    headshot_stat_id: int = HEADSHOT_CUSTOM_STAT_ID


class RequestBudgetConfig(BaseServiceConfig):
    max_requests: int = Field(default=MAX_SPECTATOR_REQUESTS, ge=1)
    restore_interval_s: float = Field(default=RESTORE_INTERVAL_S, gt=0)
    window_s: float = Field(default=RATE_WINDOW_S, gt=0)
    display_margin_s: float = Field(default=RESTORE_DISPLAY_MARGIN_S, ge=0)


class OrchestratorConfig(BaseServiceConfig):
    asset_retry_delay_s: float = Field(default=ASSET_RETRY_DELAY_S, ge=0)
    history_limit: int = Field(default=SEARCH_HISTORY_LIMIT, ge=1)


class RosterLookupConfig(BaseServiceConfig):
    roster_dir: Path = Path.home() / ".deadlyze" / "rosters"


# ─── Pydantic Validation Models ───────────────────────────────────────────────


class MatchPlayer(ApiModel):
    """One entry of the live roster."""

    account_id: int
    steam_name: str = ""
    player_slot: int
    team: int
    hero_id: int

    @field_validator("team")
    @classmethod
    def validate_team(cls, v: int) -> int:
        if v not in TEAM_NAMES:
            msg = f"unknown team {v}"
            raise ValueError(msg)
        return v


class MatchData(ApiModel):
    """Live roster of a match, as produced by the native spectator parser."""

    match_id: int | None = None
    amber_team: list[MatchPlayer] = Field(default_factory=list)
    sapphire_team: list[MatchPlayer] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_accounts(self) -> MatchData:
        ids = [p.account_id for p in self.players]
        if len(ids) != len(set(ids)):
            msg = "duplicate account_id in roster"
            raise ValueError(msg)
        return self

    @property
    def players(self) -> list[MatchPlayer]:
        return [*self.amber_team, *self.sapphire_team]

    @property
    def account_ids(self) -> list[int]:
        return [p.account_id for p in self.players]

    @property
    def hero_ids(self) -> list[int]:
        return [p.hero_id for p in self.players]

    def player(self, account_id: int) -> MatchPlayer | None:
        return next((p for p in self.players if p.account_id == account_id), None)


class ItemEvent(ApiModel):
    item_id: int
    game_time_s: int = 0
    sold_time_s: int = 0


class CustomUserStat(ApiModel):
    id: int
    value: float


class StatSnapshot(ApiModel):
    """Periodic in-match stat sample of one player."""

    time_stamp_s: int | None = None
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    net_worth: int = 0
    player_damage: int = 0
    player_healing: int = 0
    last_hits: int | None = None
    denies: int | None = None
    custom_user_stats: list[CustomUserStat] = Field(default_factory=list)

    def custom_stat(self, stat_id: int) -> float | None:
        return next((s.value for s in self.custom_user_stats if s.id == stat_id), None)


class MetadataPlayer(ApiModel):
    account_id: int
    team: int | None = None
    hero_id: int | None = None
    items: list[ItemEvent] = Field(default_factory=list)
    stats: list[StatSnapshot] = Field(default_factory=list)

    @property
    def final_stats(self) -> StatSnapshot | None:
        return self.stats[-1] if self.stats else None


class MatchInfo(ApiModel):
    match_id: int | None = None
    duration_s: int = 0
    start_time: int | None = None
    players: list[MetadataPlayer] = Field(default_factory=list)


class DetailedMatchMetadata(ApiModel):
    """GET /v1/matches/{id}/metadata"""

    match_info: MatchInfo

    def player(self, account_id: int) -> MetadataPlayer | None:
        return next((p for p in self.match_info.players if p.account_id == account_id), None)
