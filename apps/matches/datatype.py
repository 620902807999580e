"""Assembled results and progressive search states of the enrichment pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from common.cache_utils import dumps

if TYPE_CHECKING:
    from apps.core.datatype import SearchStatus
    from apps.matches.conf import MatchData
    from apps.players.conf import PlayerMMR
    from apps.players.services.party_detector import PartyGroup
    from apps.players.services.relations import RelationStats
    from apps.players.services.stats import MatchStats
    from apps.players.services.tags import PlayerTag


@dataclass(slots=True, frozen=True, kw_only=True)
class EnrichmentResult:
    """
    Everything known about one match. Maps are keyed by account id (hero ids
    for icons); a missing key means the data could not be obtained.
    """

    match_data: MatchData
    hero_icon_urls: dict[int, str] = field(default_factory=dict)
    mmr: dict[int, PlayerMMR] = field(default_factory=dict)
    rank_image_urls: dict[int, str] = field(default_factory=dict)
    match_stats: dict[int, MatchStats] = field(default_factory=dict)
    relation_stats: dict[int, RelationStats] = field(default_factory=dict)
    party_groups: tuple[PartyGroup, ...] = ()
    player_tags: dict[int, tuple[PlayerTag, ...]] = field(default_factory=dict)
    timestamp: float = 0.0

    def party_of(self, account_id: int) -> PartyGroup | None:
        return next((g for g in self.party_groups if account_id in g.members), None)

    def to_json(self) -> str:
        return dumps(self)


@dataclass(slots=True, frozen=True, kw_only=True)
class SearchState:
    status: SearchStatus
    match_id: str
    data: EnrichmentResult | None = None
    reason: str | None = None
    from_cache: bool = False

    def to_json(self) -> str:
        return dumps(self)
