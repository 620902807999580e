from unittest.mock import AsyncMock

from apps.core.exceptions import RateLimitedError
from apps.core.services.storage import durable_store
from apps.players.conf import EnemyStats, MateStats
from apps.players.services.identity import (
    StoredIdentityProvider,
    account_id_to_steam_id64,
    steam_id64_to_account_id,
)
from apps.players.services.relations import RelationCounts, fetch_relation_stats

USER = 1


def _client(mates=(), enemies=()):
    client = AsyncMock()
    client.fetch_mate_stats = AsyncMock(return_value=list(mates))
    client.fetch_enemy_stats = AsyncMock(return_value=list(enemies))
    return client


async def test_relation_stats_join_both_views():
    client = _client(
        mates=[MateStats(mate_id=2, matches_played=5, wins=3)],
        enemies=[EnemyStats(enemy_id=2, matches_played=4, wins=1), EnemyStats(enemy_id=3, matches_played=1, wins=1)],
    )

    result = await fetch_relation_stats(client, USER, [USER, 2, 3, 4])

    assert set(result) == {2, 3, 4}
    assert result[2].with_player == RelationCounts(games=5, wins=3, losses=2)
    assert result[2].against_player == RelationCounts(games=4, wins=1, losses=3)
    assert result[3].with_player == RelationCounts()
    assert result[4].against_player == RelationCounts()
    client.fetch_mate_stats.assert_awaited_once_with(USER)


async def test_relation_stats_drop_on_failure():
    client = _client()
    client.fetch_enemy_stats.side_effect = RateLimitedError("429")

    assert await fetch_relation_stats(client, USER, [2, 3]) == {}


def test_losses_are_derived():
    assert RelationCounts.of(games=10, wins=4).losses == 6


def test_steam_id_conversion():
    assert steam_id64_to_account_id("76561197960265738") == 10
    assert account_id_to_steam_id64(10) == "76561197960265738"


def test_identity_absent_by_default():
    assert StoredIdentityProvider(durable_store()).current_user() is None


def test_identity_remember_and_forget():
    provider = StoredIdentityProvider(durable_store())

    stored = provider.remember("76561198000000000", "Player")
    loaded = provider.current_user()

    assert loaded == stored
    assert loaded.account_id == 39734272
    assert loaded.persona_name == "Player"

    provider.forget()
    assert provider.current_user() is None


def test_identity_ignores_garbage():
    store = durable_store()
    store.set("deadlyze:current_user", '{"steam_id64": "not-a-number"}')

    assert StoredIdentityProvider(store).current_user() is None
