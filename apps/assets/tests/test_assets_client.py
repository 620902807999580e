import httpx
import pytest

from apps.assets.conf import AssetsConfig, Rank
from apps.assets.services.assets_client import AssetsClient, rank_image_url

NO_DELAY = AssetsConfig(hero_fetch_delay_s=0, item_fetch_delay_s=0)


def _hero(hero_id: int) -> dict:
    return {"id": hero_id, "name": f"hero{hero_id}", "images": {"selection_image_webp": f"https://img/{hero_id}.webp"}}


@pytest.fixture
def client(api_config, mock_session):
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        hero_id = int(request.url.path.rsplit("/", 1)[-1])
        if hero_id == 404:
            return httpx.Response(404)
        if hero_id == 500:
            return httpx.Response(500)
        return httpx.Response(200, json=_hero(hero_id))

    c = AssetsClient(api_config, assets_config=NO_DELAY, session=mock_session(handler))
    c.calls = calls
    return c


async def test_batch_dedupes_and_skips_failures(client):
    icons = await client.fetch_hero_icon_urls([1, 2, 1, 404, 500, 2])

    assert icons == {1: "https://img/1.webp", 2: "https://img/2.webp"}
    # 1, 2, 404 once each; 500 retried by the client
    assert client.calls.count("/v2/heroes/1") == 1
    assert client.calls.count("/v2/heroes/2") == 1
    assert client.calls.count("/v2/heroes/404") == 1


async def test_batch_order_is_sequential(client):
    await client.fetch_heroes([3, 1, 2])
    assert client.calls == ["/v2/heroes/3", "/v2/heroes/1", "/v2/heroes/2"]


async def test_items_flag_abilities(api_config, mock_session):
    def handler(request: httpx.Request) -> httpx.Response:
        item_id = int(request.url.path.rsplit("/", 1)[-1])
        payload = {"id": item_id, "name": f"item{item_id}"}
        if item_id == 1:
            payload["shop_image_small"] = "https://img/item1.png"
        return httpx.Response(200, json=payload)

    client = AssetsClient(api_config, assets_config=NO_DELAY, session=mock_session(handler))
    items = await client.fetch_items([1, 2])

    assert items[1].is_shop_item
    assert items[1].image_url == "https://img/item1.png"
    assert not items[2].is_shop_item


RANKS = [
    Rank(tier=5, name="Ritualist", images={"small_subrank3_webp": "https://img/r5-3.webp"}),
    Rank(tier=6, name="Emissary"),
]


def test_rank_image_url():
    assert rank_image_url(5, 3, RANKS) == "https://img/r5-3.webp"


@pytest.mark.parametrize(("division", "tier"), [(5, 4), (6, 1), (9, 1), (5, 7)])
def test_rank_image_url_unknown(division, tier):
    assert rank_image_url(division, tier, RANKS) is None
