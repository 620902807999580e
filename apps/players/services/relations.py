"""Head-to-head record between the viewing user and the other players of a match."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Self

import structlog

from apps.core.exceptions import ApiError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from apps.players.services.player_client import PlayerDataClient

log = structlog.get_logger(__name__).bind(component="RelationStats")


@dataclass(slots=True, frozen=True)
class RelationCounts:
    games: int = 0
    wins: int = 0
    losses: int = 0

    @classmethod
    def of(cls, games: int, wins: int) -> Self:
        # losses are never observed, only implied
        return cls(games=games, wins=wins, losses=max(games - wins, 0))


@dataclass(slots=True, frozen=True)
class RelationStats:
    with_player: RelationCounts
    against_player: RelationCounts


async def fetch_relation_stats(
    client: PlayerDataClient,
    user_account_id: int,
    account_ids: Iterable[int],
) -> dict[int, RelationStats]:
    """
    One teammate view and one opponent view of the user's history, joined per
    account. Any failure drops the whole map: a half-known record would read
    as "never met".
    """
    try:
        mates, enemies = await asyncio.gather(
            client.fetch_mate_stats(user_account_id),
            client.fetch_enemy_stats(user_account_id),
        )
    except ApiError as exc:
        log.warning("relation stats unavailable", user=user_account_id, err=str(exc))
        return {}

    with_map = {m.mate_id: RelationCounts.of(m.matches_played, m.wins) for m in mates}
    against_map = {e.enemy_id: RelationCounts.of(e.matches_played, e.wins) for e in enemies}

    return {
        account_id: RelationStats(
            with_player=with_map.get(account_id, RelationCounts()),
            against_player=against_map.get(account_id, RelationCounts()),
        )
        for account_id in account_ids
        if account_id != user_account_id
    }
