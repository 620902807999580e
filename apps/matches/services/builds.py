"""Item builds and end-of-match numbers reconstructed from match metadata."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from apps.matches.conf import MAX_BUILD_SLOTS

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from apps.assets.conf import Item
    from apps.assets.services.assets_client import AssetsClient
    from apps.matches.conf import DetailedMatchMetadata, ItemEvent
    from apps.matches.services.metadata_service import MatchMetadataService

log = structlog.get_logger(__name__).bind(component="Builds")


@dataclass(slots=True, frozen=True, kw_only=True)
class BuildItem:
    item_id: int
    name: str
    image_url: str
    # ownership interval in match seconds; `owned_until_s` is the match end
    owned_from_s: int
    owned_until_s: int | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class FinalStats:
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    net_worth: int = 0
    player_damage: int = 0
    healing: int = 0
    duration_s: int = 0


@dataclass(slots=True, frozen=True, kw_only=True)
class PlayerBuild:
    match_id: int
    account_id: int
    items: tuple[BuildItem, ...]
    final: FinalStats | None


def reconstruct_build(
    events: Iterable[ItemEvent],
    catalog: Mapping[int, Item],
    *,
    duration_s: int | None = None,
    max_slots: int = MAX_BUILD_SLOTS,
) -> list[BuildItem]:
    """
    Final inventory in purchase order. Only the first event of an item id
    counts; abilities (no shop image) and items that were later sold are left
    out.
    """
    seen: set[int] = set()
    build: list[BuildItem] = []

    for event in events:
        if event.item_id in seen:
            continue
        seen.add(event.item_id)

        item = catalog.get(event.item_id)
        if item is None or not item.is_shop_item or event.sold_time_s > 0:
            continue
        build.append(
            BuildItem(
                item_id=event.item_id,
                name=item.name,
                image_url=item.image_url,
                owned_from_s=event.game_time_s,
                owned_until_s=duration_s or None,
            ),
        )

    build.sort(key=lambda b: b.owned_from_s)
    return build[:max_slots]


def final_stat_snapshot(metadata: DetailedMatchMetadata, account_id: int) -> FinalStats | None:
    player = metadata.player(account_id)
    if player is None:
        return None
    last = player.final_stats
    duration = metadata.match_info.duration_s or 0
    if last is None:
        return FinalStats(duration_s=duration)
    return FinalStats(
        kills=last.kills,
        deaths=last.deaths,
        assists=last.assists,
        net_worth=last.net_worth,
        player_damage=last.player_damage,
        healing=last.player_healing,
        duration_s=duration,
    )


def build_item_ids(metadata: DetailedMatchMetadata, account_id: int) -> list[int]:
    """Distinct item ids a player touched, for catalog prefetching."""
    player = metadata.player(account_id)
    if player is None:
        return []
    return list(dict.fromkeys(e.item_id for e in player.items))


async def load_player_build(
    metadata: MatchMetadataService,
    assets: AssetsClient,
    match_id: int,
    account_id: int,
) -> PlayerBuild | None:
    """
    Build and final numbers of one player in a past match. `None` when the
    metadata is unknown, rate limited (queued for retry) or lacks the player.
    Catalog gaps only shorten the build.
    """
    match_metadata = await metadata.get(match_id, account_id)
    player = match_metadata.player(account_id) if match_metadata else None
    if player is None:
        return None
    catalog = await assets.fetch_items(build_item_ids(match_metadata, account_id))
    items = reconstruct_build(player.items, catalog, duration_s=match_metadata.match_info.duration_s)
    log.debug("build loaded", match_id=match_id, account_id=account_id, items=len(items))
    return PlayerBuild(
        match_id=match_id,
        account_id=account_id,
        items=tuple(items),
        final=final_stat_snapshot(match_metadata, account_id),
    )
