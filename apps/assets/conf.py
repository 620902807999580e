"""Configuration, constants, and Pydantic models for the 'assets' app."""

from __future__ import annotations

from typing import Final

from pydantic import Field

from apps.core.conf import ApiModel, BaseServiceConfig

# ─── Service Defaults ─────────────────────────────────────────────────────────
HERO_FETCH_DELAY_S: Final[float] = 0.001
ITEM_FETCH_DELAY_S: Final[float] = 0.001

RANK_SUBTIERS: Final[range] = range(1, 7)


# ─── Pydantic Configuration & Validation Models ────────────────────────────────


class AssetsConfig(BaseServiceConfig):
    """Pacing of catalog batch lookups."""

    hero_fetch_delay_s: float = Field(default=HERO_FETCH_DELAY_S, ge=0)
    item_fetch_delay_s: float = Field(default=ITEM_FETCH_DELAY_S, ge=0)


class HeroImages(ApiModel):
    selection_image_webp: str | None = None
    icon_image_small_webp: str | None = None


class Hero(ApiModel):
    """GET /v2/heroes/{id}"""

    id: int
    name: str
    images: HeroImages = Field(default_factory=HeroImages)

    @property
    def icon_url(self) -> str | None:
        return self.images.selection_image_webp or self.images.icon_image_small_webp or None


class RankImages(ApiModel):
    small_subrank1_webp: str | None = None
    small_subrank2_webp: str | None = None
    small_subrank3_webp: str | None = None
    small_subrank4_webp: str | None = None
    small_subrank5_webp: str | None = None
    small_subrank6_webp: str | None = None

    def subrank(self, division_tier: int) -> str | None:
        if division_tier not in RANK_SUBTIERS:
            return None
        return getattr(self, f"small_subrank{division_tier}_webp")


class Rank(ApiModel):
    """One entry of GET /v2/ranks."""

    tier: int
    name: str
    images: RankImages = Field(default_factory=RankImages)


class Item(ApiModel):
    """
    GET /v2/items/{id}. Abilities share the endpoint but carry no shop image,
    which is how builds tell them apart from purchasable items.
    """

    id: int
    name: str
    class_name: str | None = None
    shop_image_small: str | None = None
    shop_image_small_webp: str | None = None
    shop_image_webp: str | None = None

    @property
    def is_shop_item(self) -> bool:
        return bool(self.shop_image_small)

    @property
    def image_url(self) -> str:
        return self.shop_image_small_webp or self.shop_image_webp or self.shop_image_small or ""
