from unittest.mock import AsyncMock

import pytest

from apps.core.exceptions import FetchFailedError
from apps.matches.conf import DetailedMatchMetadata
from apps.players.conf import TagThresholds
from apps.players.services.stats import MatchStats
from apps.players.services.tags import check_cheater, determine_player_tags, stat_tags

ACCOUNT = 42


def _kinds(tags):
    return {t.kind for t in tags}


def _stats(**kwargs) -> MatchStats:
    return MatchStats(**kwargs)


def test_smurf_boundary():
    at = _stats(total_matches=20, total_winrate=65, recent_winrate=65)
    below = _stats(total_matches=19, total_winrate=65, recent_winrate=65)

    assert "smurf" in _kinds(stat_tags(at, None))
    assert "smurf" not in _kinds(stat_tags(below, None))


def test_smurf_needs_both_winrates():
    assert "smurf" not in _kinds(stat_tags(_stats(total_matches=50, total_winrate=70, recent_winrate=64), None))


def test_loser_boundary():
    assert "loser" in _kinds(stat_tags(_stats(recent_matches=5, recent_winrate=40), None))
    assert "loser" not in _kinds(stat_tags(_stats(recent_matches=5, recent_winrate=41), None))
    assert "loser" not in _kinds(stat_tags(_stats(recent_matches=4, recent_winrate=0), None))


def test_spammer_boundary():
    # 37/100 exactly
    at = _stats(recent_matches=100, recent_hero_counts={7: 37})
    below = _stats(recent_matches=100, recent_hero_counts={7: 36})

    assert "spammer" in _kinds(stat_tags(at, 7))
    assert "spammer" not in _kinds(stat_tags(below, 7))


def test_spammer_needs_recent_history():
    assert stat_tags(_stats(recent_matches=0), 7) == []


def test_thresholds_are_configurable():
    lenient = TagThresholds(smurf_min_matches=1, smurf_winrate=50)
    assert "smurf" in _kinds(stat_tags(_stats(total_matches=1, total_winrate=50, recent_winrate=50), None, lenient))


def test_tags_carry_evidence():
    (tag,) = stat_tags(_stats(total_matches=30, total_winrate=70, recent_winrate=80, recent_matches=2), None)
    assert (tag.kind, tag.value, tag.total_value, tag.recent_value) == ("smurf", 30, 70, 80)


def _metadata(headshot: float | None) -> DetailedMatchMetadata:
    custom = [{"id": 13, "value": headshot}] if headshot is not None else []
    return DetailedMatchMetadata.model_validate(
        {
            "match_info": {
                "duration_s": 1800,
                "players": [
                    {"account_id": ACCOUNT, "stats": [{"kills": 1}, {"kills": 5, "custom_user_stats": custom}]},
                ],
            },
        },
    )


@pytest.fixture
def five_matches(history_item):
    return _stats(last_matches=tuple(history_item(i) for i in range(1, 6)))


async def test_cheater_fires_on_high_mean(five_matches):
    readings = {1: 40.0, 2: 30.0, 3: 20.0, 4: None, 5: None}
    fetch = AsyncMock(side_effect=lambda match_id, account_id: _metadata(readings[match_id]))

    tag = await check_cheater(five_matches, ACCOUNT, fetch)

    assert tag is not None
    assert tag.kind == "cheater"
    assert tag.value == 30.0
    assert tag.recent_value == 3
    assert [c.args for c in fetch.await_args_list] == [(i, ACCOUNT) for i in range(1, 6)]


async def test_cheater_needs_three_readings(five_matches):
    readings = {1: 90.0, 2: 90.0}
    fetch = AsyncMock(side_effect=lambda match_id, account_id: _metadata(readings.get(match_id)))

    assert await check_cheater(five_matches, ACCOUNT, fetch) is None


async def test_cheater_failures_count_as_missing(five_matches):
    async def fetch(match_id, account_id):
        if match_id in (1, 2):
            raise FetchFailedError("down")
        if match_id == 3:
            return None
        return _metadata(50.0)

    assert await check_cheater(five_matches, ACCOUNT, fetch) is None


async def test_cheater_below_threshold(five_matches):
    fetch = AsyncMock(return_value=_metadata(29.9))
    assert await check_cheater(five_matches, ACCOUNT, fetch) is None


async def test_cheater_needs_five_matches(history_item):
    fetch = AsyncMock(return_value=_metadata(99.0))
    stats = _stats(last_matches=tuple(history_item(i) for i in range(4)))

    assert await check_cheater(stats, ACCOUNT, fetch) is None
    fetch.assert_not_awaited()


async def test_determine_player_tags_combines_rules(five_matches):
    stats = MatchStats(
        total_matches=40,
        total_winrate=70,
        recent_winrate=70,
        recent_matches=10,
        recent_hero_counts={7: 10},
        last_matches=five_matches.last_matches,
    )
    fetch = AsyncMock(return_value=_metadata(45.0))

    tags = await determine_player_tags(stats, 7, ACCOUNT, fetch_metadata=fetch)

    assert _kinds(tags) == {"smurf", "spammer", "cheater"}


async def test_determine_player_tags_without_fetcher():
    tags = await determine_player_tags(_stats(recent_matches=5, recent_winrate=0), None, ACCOUNT)
    assert _kinds(tags) == {"loser"}
