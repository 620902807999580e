"""
Derived per-player statistics over a match history.

Everything here is recomputable from the raw history and never persisted on
its own. Percentages are integers rounded half-up (12.5 → 13).
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from apps.players.conf import StatsConfig
from common.time_utils import SYSTEM_CLOCK

if TYPE_CHECKING:
    from collections.abc import Iterable

    from apps.players.conf import MatchHistoryItem


def win_rate(wins: int, total: int) -> int:
    """Integer percentage rounded half-up; 0 when there is nothing to divide."""
    if total <= 0:
        return 0
    return (200 * wins + total) // (2 * total)


@dataclass(slots=True, frozen=True, kw_only=True)
class HeroStats:
    hero_id: int
    matches: int
    wins: int
    winrate: int
    avg_kills: float
    avg_deaths: float
    avg_assists: float
    kd_ratio: float


@dataclass(slots=True, frozen=True, kw_only=True)
class MatchStats:
    total_matches: int = 0
    total_wins: int = 0
    total_winrate: int = 0
    recent_matches: int = 0
    recent_wins: int = 0
    recent_winrate: int = 0
    # most recent first
    last_matches: tuple[MatchHistoryItem, ...] = ()
    recent_hero_counts: dict[int, int] = field(default_factory=dict)
    current_hero: HeroStats | None = None
    current_streak: int = 0
    hero_streak: int | None = None
    avg_last_hits: float | None = None
    avg_denies: float | None = None
    avg_net_worth: float | None = None


class _Streak:
    """Signed run length of identical outcomes, counted from the most recent match."""

    __slots__ = ("open", "value")

    def __init__(self) -> None:
        self.value = 0
        self.open = True

    def push(self, win: bool) -> None:
        if not self.open:
            return
        step = 1 if win else -1
        if self.value == 0 or (self.value > 0) == win:
            self.value += step
        else:
            self.open = False


def calculate_match_stats(
    history: Iterable[MatchHistoryItem],
    current_hero_id: int | None = None,
    *,
    now: float | None = None,
    config: StatsConfig | None = None,
) -> MatchStats:
    cfg = config or StatsConfig()
    cutoff = (SYSTEM_CLOCK() if now is None else now) - cfg.recent_window_s
    # sorted() keeps the source order for equal start times
    ordered = sorted(history, key=lambda m: m.start_time, reverse=True)

    total = wins = recent = recent_wins = 0
    recent_heroes: Counter[int] = Counter()
    last: list[MatchHistoryItem] = []
    streak = _Streak()

    hero_matches = hero_wins = hero_kda_n = 0
    hero_kills = hero_deaths = hero_assists = 0
    hero_streak = _Streak()

    farm_n = farm_lh = farm_dn = farm_nw = 0

    for m in ordered:
        win = m.is_win
        total += 1
        wins += win
        streak.push(win)
        if len(last) < cfg.last_matches_count:
            last.append(m)

        if m.start_time >= cutoff:
            recent += 1
            recent_wins += win
            recent_heroes[m.hero_id] += 1

        if current_hero_id is not None and m.hero_id == current_hero_id:
            hero_matches += 1
            hero_wins += win
            hero_streak.push(win)
            if m.has_kda:
                hero_kda_n += 1
                hero_kills += m.player_kills or 0
                hero_deaths += m.player_deaths or 0
                hero_assists += m.player_assists or 0

        if m.has_farm_stats:
            farm_n += 1
            farm_lh += m.last_hits or 0
            farm_dn += m.denies or 0
            farm_nw += m.net_worth or 0

    current_hero = None
    if current_hero_id is not None and hero_matches:
        current_hero = HeroStats(
            hero_id=current_hero_id,
            matches=hero_matches,
            wins=hero_wins,
            winrate=win_rate(hero_wins, hero_matches),
            avg_kills=_avg(hero_kills, hero_kda_n) or 0.0,
            avg_deaths=_avg(hero_deaths, hero_kda_n) or 0.0,
            avg_assists=_avg(hero_assists, hero_kda_n) or 0.0,
            kd_ratio=round(hero_kills / hero_deaths, 2) if hero_deaths else float(hero_kills),
        )

    return MatchStats(
        total_matches=total,
        total_wins=wins,
        total_winrate=win_rate(wins, total),
        recent_matches=recent,
        recent_wins=recent_wins,
        recent_winrate=win_rate(recent_wins, recent),
        last_matches=tuple(last),
        recent_hero_counts=dict(recent_heroes),
        current_hero=current_hero,
        current_streak=streak.value,
        hero_streak=hero_streak.value if hero_matches else None,
        avg_last_hits=_avg(farm_lh, farm_n),
        avg_denies=_avg(farm_dn, farm_n),
        avg_net_worth=_avg(farm_nw, farm_n),
    )


def _avg(total: float, n: int) -> float | None:
    return round(total / n, 1) if n else None
