"""
Client for the player-stats backend.
Documentation: https://api.deadlock-api.com/docs
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from apps.core.exceptions import ApiError
from apps.core.services.http_client import ApiClient, ApiConfig
from apps.matches.conf import DetailedMatchMetadata
from apps.players.conf import MMR_BATCH_SIZE, EnemyStats, MatchHistoryItem, MateStats, PlayerMMR
from common.iterables_utils import chunked, unique

if TYPE_CHECKING:
    from collections.abc import Iterable

log = structlog.get_logger(__name__).bind(component="PlayerDataClient")


class PlayerDataClient(ApiClient):
    def _default_config(self) -> ApiConfig:
        return ApiConfig.from_settings("players")

    # ───────────────────────── MMR ──────────────────────────
    async def fetch_mmr(self, account_ids: Iterable[int]) -> dict[int, PlayerMMR]:
        """
        Rank data keyed by account id. A failed chunk only leaves its accounts
        out of the map.
        """
        result: dict[int, PlayerMMR] = {}
        for batch in chunked(unique(account_ids), MMR_BATCH_SIZE):
            try:
                rows = await self.get_model_list(
                    "/v1/players/mmr",
                    PlayerMMR,
                    params={"account_ids": ",".join(map(str, batch))},
                )
            except ApiError as exc:
                log.warning("mmr batch failed", size=len(batch), err=str(exc))
                continue
            for row in rows or []:
                result[row.account_id] = row
        return result

    # ───────────────────────── history ──────────────────────────
    async def fetch_match_history(self, account_id: int) -> list[MatchHistoryItem] | None:
        return await self.get_model_list(
            f"/v1/players/{account_id}/match-history",
            MatchHistoryItem,
            params={"only_stored_history": "true"},
        )

    # ───────────────────────── relations ──────────────────────────
    async def fetch_mate_stats(
        self,
        account_id: int,
        *,
        min_unix_timestamp: int | None = None,
    ) -> list[MateStats]:
        params = {"min_unix_timestamp": min_unix_timestamp} if min_unix_timestamp is not None else None
        return await self.get_model_list(f"/v1/players/{account_id}/mate-stats", MateStats, params=params) or []

    async def fetch_enemy_stats(self, account_id: int) -> list[EnemyStats]:
        return await self.get_model_list(f"/v1/players/{account_id}/enemy-stats", EnemyStats) or []

    # ───────────────────────── match metadata ──────────────────────────
    async def fetch_match_metadata(self, match_id: int) -> DetailedMatchMetadata | None:
        """Raises RateLimitedError on 429 so callers can queue a retry."""
        return await self.get_model(
            f"/v1/matches/{match_id}/metadata",
            DetailedMatchMetadata,
            params={"is_custom": "false"},
        )
