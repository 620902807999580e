"""Configuration, constants, and Pydantic models for the 'players' app."""

from __future__ import annotations

from typing import Final

from pydantic import Field, field_validator, model_validator

from apps.core.conf import SECONDS_PER_DAY, ApiModel, BaseServiceConfig
from common.time_utils import to_unix_timestamp_safe

# ─── Service & Handler Defaults ───────────────────────────────────────────────
RECENT_WINDOW_DAYS: Final[int] = 14
LAST_MATCHES_COUNT: Final[int] = 5
MMR_BATCH_SIZE: Final[int] = 100

PARTY_DETECTION_SECONDS: Final[int] = 3 * SECONDS_PER_DAY
PLAYER_MATE_STATS_DELAY_S: Final[float] = 0.1

# First half belongs to the amber team, second half to sapphire.
PARTY_COLORS: Final[tuple[str, ...]] = (
    "#f0c080",
    "#e8b060",
    "#d9a040",
    "#64dfb4",
    "#4cc9a0",
    "#35b08a",
)

# ─── Pydantic Configuration Models ────────────────────────────────────────────


class StatsConfig(BaseServiceConfig):
    recent_window_days: int = Field(default=RECENT_WINDOW_DAYS, ge=1)
    last_matches_count: int = Field(default=LAST_MATCHES_COUNT, ge=1)

    @property
    def recent_window_s(self) -> int:
        return self.recent_window_days * SECONDS_PER_DAY


class TagThresholds(BaseServiceConfig):
    """Every number the tag rules compare against."""

    smurf_min_matches: int = 20
    smurf_winrate: int = 65
    loser_min_matches: int = 5
    loser_winrate: int = 40
    spammer_hero_rate: int = 37
    cheater_matches_count: int = 5
    cheater_min_valid_readings: int = 3
    cheater_headshot_rate: float = 30

    @model_validator(mode="after")
    def _readings_fit_sample(self) -> TagThresholds:
        if self.cheater_min_valid_readings > self.cheater_matches_count:
            msg = "cheater_min_valid_readings cannot exceed cheater_matches_count"
            raise ValueError(msg)
        return self


class PartyDetectionConfig(BaseServiceConfig):
    window_s: int = Field(default=PARTY_DETECTION_SECONDS, ge=1)
    mate_stats_delay_s: float = Field(default=PLAYER_MATE_STATS_DELAY_S, ge=0)
    min_party_size: int = Field(default=2, ge=2)
    palette: tuple[str, ...] = PARTY_COLORS

    @field_validator("palette")
    @classmethod
    def validate_palette(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Each team needs its own half of the palette."""
        if len(v) < 2 or len(v) % 2:
            msg = "palette must hold an even number (>=2) of colors"
            raise ValueError(msg)
        return v


# ─── Pydantic Validation Models (player-stats backend) ────────────────────────


class PlayerMMR(ApiModel):
    """One row of GET /v1/players/mmr."""

    account_id: int
    division: int
    division_tier: int
    match_id: int | None = None
    player_score: float | None = None
    rank: int | None = None
    start_time: int | None = None


class MatchHistoryItem(ApiModel):
    """One row of GET /v1/players/{id}/match-history."""

    match_id: int
    match_result: int
    player_team: int
    start_time: int
    hero_id: int
    match_duration_s: int | None = None
    player_kills: int | None = None
    player_deaths: int | None = None
    player_assists: int | None = None
    last_hits: int | None = None
    denies: int | None = None
    net_worth: int | None = None

    @field_validator("start_time", mode="before")
    @classmethod
    def _coerce_start_time(cls, v: object) -> int:
        ts = to_unix_timestamp_safe(v)  # type: ignore[arg-type]
        if ts is None:
            msg = f"unparseable start_time: {v!r}"
            raise ValueError(msg)
        return ts

    @property
    def is_win(self) -> bool:
        return self.match_result == self.player_team

    @property
    def has_farm_stats(self) -> bool:
        return None not in (self.last_hits, self.denies, self.net_worth)

    @property
    def has_kda(self) -> bool:
        return None not in (self.player_kills, self.player_deaths, self.player_assists)


class MateStats(ApiModel):
    """One row of GET /v1/players/{id}/mate-stats."""

    mate_id: int
    matches_played: int = 0
    wins: int = 0
    matches: list[int] = Field(default_factory=list)


class EnemyStats(ApiModel):
    """One row of GET /v1/players/{id}/enemy-stats."""

    enemy_id: int
    matches_played: int = 0
    wins: int = 0
    matches: list[int] = Field(default_factory=list)
