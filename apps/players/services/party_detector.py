"""
Premade (party) detection from mutual "played together recently" signals.

Two teammates are considered partied only when each lists the other among
their recent mates; one-sided claims are discarded.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from django.conf import settings

from apps.core.exceptions import ApiError
from apps.matches.conf import AMBER_TEAM, SAPPHIRE_TEAM, TEAM_NAMES
from common.time_utils import SYSTEM_CLOCK, Clock, seconds_ago

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from apps.matches.conf import MatchPlayer
    from apps.players.conf import PartyDetectionConfig
    from apps.players.services.player_client import PlayerDataClient

log = structlog.get_logger(__name__).bind(component="PartyDetector")

TEAM_ORDER = (AMBER_TEAM, SAPPHIRE_TEAM)


@dataclass(slots=True, frozen=True, kw_only=True)
class PartyGroup:
    members: tuple[int, ...]
    color: str
    party_id: str
    team: int


def group_mutual_mates(
    account_ids: Sequence[int],
    mate_sets: Mapping[int, set[int]],
    *,
    min_size: int = 2,
) -> list[list[int]]:
    """
    Greedy partition in roster order: each unprocessed player collects every
    unprocessed teammate with a mutual claim. Groups below `min_size` are not
    returned and only the seed player is marked processed.
    """
    processed: set[int] = set()
    groups: list[list[int]] = []

    for seed in account_ids:
        if seed in processed:
            continue
        seed_mates = mate_sets.get(seed, set())
        members = [seed]
        for other in account_ids:
            if other == seed or other in processed:
                continue
            if other in seed_mates and seed in mate_sets.get(other, set()):
                members.append(other)

        if len(members) >= min_size:
            groups.append(members)
            processed.update(members)
        else:
            processed.add(seed)

    return groups


class PartyDetector:
    def __init__(
        self,
        client: PlayerDataClient,
        config: PartyDetectionConfig | None = None,
        *,
        clock: Clock = SYSTEM_CLOCK,
    ) -> None:
        self.client = client
        self.config = config or settings.ENRICHMENT_CONFIG.party
        self.clock = clock

    async def detect(self, players: Sequence[MatchPlayer]) -> list[PartyGroup]:
        """Never raises: a broken run yields no parties rather than a broken search."""
        try:
            return await self._detect(players)
        except Exception:
            log.exception("party detection failed")
            return []

    async def _detect(self, players: Sequence[MatchPlayer]) -> list[PartyGroup]:
        palette = self.config.palette
        half = len(palette) // 2
        min_ts = seconds_ago(self.config.window_s, clock=self.clock)
        groups: list[PartyGroup] = []

        for team_idx, team in enumerate(TEAM_ORDER):
            team_ids = [p.account_id for p in players if p.team == team]
            if not team_ids:
                continue
            mate_sets = await self._fetch_mate_sets(team_ids, min_ts)
            offset = team_idx * half
            for n, members in enumerate(group_mutual_mates(team_ids, mate_sets, min_size=self.config.min_party_size)):
                slot = offset + n
                groups.append(
                    PartyGroup(
                        members=tuple(members),
                        color=palette[slot % len(palette)],
                        party_id=f"party-{slot}",
                        team=team,
                    ),
                )
            log.debug("team parties", team=TEAM_NAMES[team], parties=sum(g.team == team for g in groups))

        return groups

    async def _fetch_mate_sets(self, account_ids: Sequence[int], min_ts: int) -> dict[int, set[int]]:
        """Sequential on purpose: the mate-stats endpoint throttles bursts."""
        mate_sets: dict[int, set[int]] = {}
        for idx, account_id in enumerate(account_ids):
            if idx and self.config.mate_stats_delay_s:
                await asyncio.sleep(self.config.mate_stats_delay_s)
            try:
                mates = await self.client.fetch_mate_stats(account_id, min_unix_timestamp=min_ts)
            except ApiError as exc:
                log.warning("mate stats unavailable", account_id=account_id, err=str(exc))
                mates = []
            mate_sets[account_id] = {m.mate_id for m in mates}
        return mate_sets
