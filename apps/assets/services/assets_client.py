"""
Client for the assets catalog (heroes, ranks, items).
Documentation: https://assets.deadlock-api.com/scalar
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx
import structlog
from django.conf import settings

from apps.assets.conf import AssetsConfig, Hero, Item, Rank
from apps.core.exceptions import ApiError
from apps.core.services.http_client import ApiClient, ApiConfig
from common.iterables_utils import unique

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

log = structlog.get_logger(__name__).bind(component="AssetsClient")


class AssetsClient(ApiClient):
    def __init__(
        self,
        config: ApiConfig | None = None,
        *,
        assets_config: AssetsConfig | None = None,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(config, session=session)
        self.assets_config = assets_config or settings.ENRICHMENT_CONFIG.assets

    def _default_config(self) -> ApiConfig:
        return ApiConfig.from_settings("assets")

    # ───────────────────────── single lookups ──────────────────────────
    async def fetch_hero(self, hero_id: int) -> Hero | None:
        return await self.get_model(f"/v2/heroes/{hero_id}", Hero)

    async def fetch_item(self, item_id: int) -> Item | None:
        return await self.get_model(f"/v2/items/{item_id}", Item)

    async def fetch_ranks(self) -> list[Rank]:
        return await self.get_model_list("/v2/ranks", Rank) or []

    # ───────────────────────── batch lookups ──────────────────────────
    async def fetch_heroes(self, hero_ids: Iterable[int]) -> dict[int, Hero]:
        return await self._fetch_batch("heroes", hero_ids, self.fetch_hero, self.assets_config.hero_fetch_delay_s)

    async def fetch_items(self, item_ids: Iterable[int]) -> dict[int, Item]:
        return await self._fetch_batch("items", item_ids, self.fetch_item, self.assets_config.item_fetch_delay_s)

    async def fetch_hero_icon_urls(self, hero_ids: Iterable[int]) -> dict[int, str]:
        heroes = await self.fetch_heroes(hero_ids)
        return {hero_id: hero.icon_url for hero_id, hero in heroes.items() if hero.icon_url}

    async def _fetch_batch[T](
        self,
        kind: str,
        ids: Iterable[int],
        fetch_one: Callable[[int], Awaitable[T | None]],
        delay_s: float,
    ) -> dict[int, T]:
        """
        Sequential, de-duplicated lookups. A failing id is left out of the
        result and never aborts the batch.
        """
        unique_ids = unique(ids)
        found: dict[int, T] = {}
        failed: list[int] = []

        for idx, asset_id in enumerate(unique_ids):
            if idx and delay_s:
                await asyncio.sleep(delay_s)
            try:
                asset = await fetch_one(asset_id)
            except ApiError as exc:
                log.warning("asset fetch failed", kind=kind, id=asset_id, err=str(exc))
                asset = None
            if asset is None:
                failed.append(asset_id)
            else:
                found[asset_id] = asset

        log.debug("batch fetched", kind=kind, found=len(found), requested=len(unique_ids), failed=failed or None)
        return found


def rank_image_url(division: int, division_tier: int, ranks: Iterable[Rank]) -> str | None:
    """Small sub-rank image for a division / tier pair, or None when unknown."""
    rank = next((r for r in ranks if r.tier == division), None)
    if rank is None:
        log.debug("rank not found", division=division)
        return None
    url = rank.images.subrank(division_tier)
    if not url:
        log.debug("subrank image not found", division=division, tier=division_tier)
    return url or None
