from unittest.mock import AsyncMock

import pytest

from apps.core.exceptions import FetchFailedError, RateLimitedError
from apps.matches.conf import AMBER_TEAM, SAPPHIRE_TEAM, MatchPlayer
from apps.players.conf import PARTY_COLORS, MateStats, PartyDetectionConfig
from apps.players.services.party_detector import PartyDetector, group_mutual_mates

NO_DELAY = PartyDetectionConfig(mate_stats_delay_s=0)


def _client(mates: dict[int, list[int]], failing: tuple[int, ...] = ()):
    async def fetch_mate_stats(account_id, *, min_unix_timestamp=None):
        if account_id in failing:
            raise FetchFailedError("down")
        return [MateStats(mate_id=m) for m in mates.get(account_id, [])]

    client = AsyncMock()
    client.fetch_mate_stats = AsyncMock(side_effect=fetch_mate_stats)
    return client


def test_one_sided_claims_are_ignored():
    assert group_mutual_mates([1, 2, 3], {1: {2}, 2: set(), 3: set()}) == []


def test_mutual_claims_form_one_group():
    assert group_mutual_mates([1, 2, 3], {1: {2}, 2: {1}, 3: set()}) == [[1, 2]]


def test_greedy_partition_follows_roster_order():
    mate_sets = {1: {2, 3}, 2: {1, 3}, 3: {1, 2}, 4: {5}, 5: {4}, 6: set()}
    assert group_mutual_mates([1, 2, 3, 4, 5, 6], mate_sets) == [[1, 2, 3], [4, 5]]


def test_seed_collects_only_its_own_mutual_mates():
    # 2 and 3 are mutual, but 1 is only mutual with 2
    mate_sets = {1: {2}, 2: {1, 3}, 3: {2}}
    assert group_mutual_mates([1, 2, 3], mate_sets) == [[1, 2]]


async def test_detect_per_team_with_disjoint_colors(match_data, clock):
    data = match_data()
    client = _client({101: [102], 102: [101], 201: [202, 203], 202: [201], 203: [201]})
    detector = PartyDetector(client, NO_DELAY, clock=clock)

    groups = await detector.detect(data.players)

    assert [(g.members, g.team, g.party_id) for g in groups] == [
        ((101, 102), AMBER_TEAM, "party-0"),
        ((201, 202, 203), SAPPHIRE_TEAM, "party-3"),
    ]
    assert groups[0].color == PARTY_COLORS[0]
    assert groups[1].color == PARTY_COLORS[3]


async def test_groups_never_span_teams(match_data, clock):
    data = match_data()
    # cross-team claims are mutual but must not link the players
    client = _client({101: [201], 201: [101]})

    assert await PartyDetector(client, NO_DELAY, clock=clock).detect(data.players) == []


async def test_mate_window_uses_clock(match_data, clock):
    data = match_data()
    client = _client({})
    await PartyDetector(client, NO_DELAY, clock=clock).detect(data.players)

    windows = {c.kwargs["min_unix_timestamp"] for c in client.fetch_mate_stats.await_args_list}
    assert windows == {int(clock()) - NO_DELAY.window_s}
    assert client.fetch_mate_stats.await_count == 12


async def test_failed_mate_fetch_degrades_to_empty(match_data, clock):
    data = match_data()
    client = _client({101: [102], 102: [101], 103: [104], 104: [103]}, failing=(104,))

    groups = await PartyDetector(client, NO_DELAY, clock=clock).detect(data.players)

    assert [g.members for g in groups] == [(101, 102)]


async def test_total_failure_yields_no_parties(match_data, clock):
    client = AsyncMock()
    client.fetch_mate_stats = AsyncMock(side_effect=RuntimeError("broken"))

    assert await PartyDetector(client, NO_DELAY, clock=clock).detect(match_data().players) == []


async def test_rate_limited_mate_fetch_is_absorbed(match_data, clock):
    client = AsyncMock()
    client.fetch_mate_stats = AsyncMock(side_effect=RateLimitedError("429"))

    assert await PartyDetector(client, NO_DELAY, clock=clock).detect(match_data().players) == []


@pytest.mark.parametrize("palette", [("#a", "#b"), ("#a", "#b", "#c", "#d")])
async def test_colors_wrap_instead_of_crashing(clock, palette):
    players = [MatchPlayer(account_id=i, player_slot=i, team=AMBER_TEAM, hero_id=1) for i in range(1, 7)]
    mates = {1: [2], 2: [1], 3: [4], 4: [3], 5: [6], 6: [5]}
    config = PartyDetectionConfig(mate_stats_delay_s=0, palette=palette)

    groups = await PartyDetector(_client(mates), config, clock=clock).detect(players)

    assert len(groups) == 3
    assert all(g.color in palette for g in groups)
