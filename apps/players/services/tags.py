"""
Heuristic player tags (smurf / loser / spammer / cheater).

Tags are evidence-backed labels, not verdicts: each carries the numbers that
produced it and is always recomputable from `MatchStats` plus, for the
cheater rule, per-match metadata.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

import structlog

from apps.core.exceptions import ApiError
from apps.matches.conf import HEADSHOT_CUSTOM_STAT_ID
from apps.players.conf import TagThresholds
from apps.players.services.stats import win_rate

if TYPE_CHECKING:
    from apps.core.services.protocols import MetadataFetcher
    from apps.players.services.stats import MatchStats

log = structlog.get_logger(__name__).bind(component="PlayerTags")

type TagKind = Literal["smurf", "loser", "spammer", "cheater"]


@dataclass(slots=True, frozen=True, kw_only=True)
class PlayerTag:
    kind: TagKind
    value: float | None = None
    total_value: float | None = None
    recent_value: float | None = None


def stat_tags(
    stats: MatchStats,
    current_hero_id: int | None,
    thresholds: TagThresholds | None = None,
) -> list[PlayerTag]:
    """The rules that need nothing beyond the aggregated history."""
    t = thresholds or TagThresholds()
    tags: list[PlayerTag] = []

    if (
        stats.total_matches >= t.smurf_min_matches
        and stats.total_winrate >= t.smurf_winrate
        and stats.recent_winrate >= t.smurf_winrate
    ):
        tags.append(
            PlayerTag(
                kind="smurf",
                value=stats.total_matches,
                total_value=stats.total_winrate,
                recent_value=stats.recent_winrate,
            ),
        )

    if stats.recent_matches >= t.loser_min_matches and stats.recent_winrate <= t.loser_winrate:
        tags.append(PlayerTag(kind="loser", value=stats.recent_winrate, recent_value=stats.recent_matches))

    if stats.recent_matches and current_hero_id is not None:
        on_hero = stats.recent_hero_counts.get(current_hero_id, 0)
        if on_hero * 100 >= t.spammer_hero_rate * stats.recent_matches:
            tags.append(
                PlayerTag(kind="spammer", value=win_rate(on_hero, stats.recent_matches), recent_value=on_hero),
            )

    return tags


async def check_cheater(
    stats: MatchStats,
    account_id: int,
    fetch_metadata: MetadataFetcher,
    thresholds: TagThresholds | None = None,
    *,
    delay_s: float = 0.0,
    stat_id: int = HEADSHOT_CUSTOM_STAT_ID,
) -> PlayerTag | None:
    """
    Headshot-rate check over the last matches. Metadata is read one match at a
    time; too few readable matches means "no verdict", not "clean".
    """
    t = thresholds or TagThresholds()
    sample = stats.last_matches[: t.cheater_matches_count]
    if len(sample) < t.cheater_matches_count:
        return None

    readings: list[float] = []
    for idx, match in enumerate(sample):
        if idx and delay_s:
            await asyncio.sleep(delay_s)
        try:
            metadata = await fetch_metadata(match.match_id, account_id)
        except ApiError as exc:
            log.debug("metadata unavailable for cheater check", match_id=match.match_id, err=str(exc))
            continue
        if metadata is None:
            continue
        player = metadata.player(account_id)
        snapshot = player.final_stats if player else None
        value = snapshot.custom_stat(stat_id) if snapshot else None
        if value is not None and math.isfinite(value):
            readings.append(value)

    if len(readings) < t.cheater_min_valid_readings:
        log.debug("insufficient headshot readings", account_id=account_id, readings=len(readings))
        return None

    mean = sum(readings) / len(readings)
    if mean < t.cheater_headshot_rate:
        return None
    return PlayerTag(kind="cheater", value=round(mean, 1), recent_value=len(readings))


async def determine_player_tags(
    stats: MatchStats,
    current_hero_id: int | None,
    account_id: int,
    *,
    fetch_metadata: MetadataFetcher | None = None,
    thresholds: TagThresholds | None = None,
    delay_s: float = 0.0,
    stat_id: int = HEADSHOT_CUSTOM_STAT_ID,
) -> list[PlayerTag]:
    tags = stat_tags(stats, current_hero_id, thresholds)
    if fetch_metadata is not None:
        cheater = await check_cheater(
            stats,
            account_id,
            fetch_metadata,
            thresholds,
            delay_s=delay_s,
            stat_id=stat_id,
        )
        if cheater:
            tags.append(cheater)
    return tags
