from __future__ import annotations

from typing import Any

import httpx
import pytest
from django.core.cache import caches

from apps.core.services.http_client import ApiConfig, RetryConfig
from apps.matches.conf import AMBER_TEAM, SAPPHIRE_TEAM, MatchData, MatchPlayer
from apps.players.conf import MatchHistoryItem

NOW = 1_750_000_000.0
TEST_BASE_URL = "https://api.test"


class FakeClock:
    """Manually driven clock; call it for "now"."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _clear_caches():
    yield
    caches["default"].clear()
    caches["session"].clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def api_config() -> ApiConfig:
    return ApiConfig(TEST_BASE_URL, 5, RetryConfig(max_retries=2, base_delay_s=0, max_delay_s=0, jitter_factor=0))


@pytest.fixture
def mock_session():
    """Builds an AsyncClient whose requests are answered by `handler`."""
    sessions: list[httpx.AsyncClient] = []

    def factory(handler) -> httpx.AsyncClient:
        session = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=TEST_BASE_URL)
        sessions.append(session)
        return session

    return factory


@pytest.fixture
def history_item():
    def factory(
        match_id: int = 1,
        *,
        win: bool = True,
        start_time: float = NOW - 3600,
        hero_id: int = 1,
        **extra: Any,
    ) -> MatchHistoryItem:
        return MatchHistoryItem(
            match_id=match_id,
            match_result=AMBER_TEAM if win else SAPPHIRE_TEAM,
            player_team=AMBER_TEAM,
            start_time=int(start_time),
            hero_id=hero_id,
            **extra,
        )

    return factory


@pytest.fixture
def match_data():
    """Twelve players: accounts 101-106 on amber, 201-206 on sapphire."""

    def factory(match_id: int = 12345678) -> MatchData:
        amber = [
            MatchPlayer(account_id=100 + i, steam_name=f"amber{i}", player_slot=i, team=AMBER_TEAM, hero_id=i)
            for i in range(1, 7)
        ]
        sapphire = [
            MatchPlayer(
                account_id=200 + i,
                steam_name=f"sapphire{i}",
                player_slot=6 + i,
                team=SAPPHIRE_TEAM,
                hero_id=10 + i,
            )
            for i in range(1, 7)
        ]
        return MatchData(match_id=match_id, amber_team=amber, sapphire_team=sapphire)

    return factory
