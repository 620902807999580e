"""
Live roster lookup.

The native shell parses the spectator feed and drops one JSON roster per match
into the roster directory; this module validates match ids and reads those
files back as `MatchData`.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Self

import orjson
import structlog
from django.conf import settings
from pydantic import ValidationError

from apps.core.exceptions import MatchLookupError
from apps.matches.conf import MATCH_ID_RE, MatchData

if TYPE_CHECKING:
    from pathlib import Path

log = structlog.get_logger(__name__).bind(component="RosterLookup")


def is_valid_match_id(match_id: str) -> bool:
    return bool(MATCH_ID_RE.fullmatch(match_id.strip()))


def validate_match_id(match_id: str) -> str:
    """Returns the normalized id or raises `MatchLookupError`."""
    normalized = match_id.strip()
    if not MATCH_ID_RE.fullmatch(normalized):
        msg = f"invalid match id {match_id!r}: expected 8 digits"
        raise MatchLookupError(msg)
    return normalized


class RosterFileLookup:
    """`LiveMatchLookup` over `<roster_dir>/<match_id>.json`."""

    def __init__(self, roster_dir: Path) -> None:
        self.roster_dir = roster_dir

    @classmethod
    def from_settings(cls) -> Self:
        return cls(settings.ENRICHMENT_CONFIG.roster.roster_dir)

    def path_for(self, match_id: str) -> Path:
        return self.roster_dir / f"{match_id}.json"

    async def fetch_match_data(self, match_id: str) -> MatchData:
        match_id = validate_match_id(match_id)
        path = self.path_for(match_id)
        try:
            raw = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            msg = f"match {match_id} not found"
            raise MatchLookupError(msg) from exc
        except OSError as exc:
            msg = f"could not read roster for match {match_id}: {exc}"
            raise MatchLookupError(msg) from exc

        try:
            data = MatchData.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as exc:
            log.warning("malformed roster file", match_id=match_id, path=str(path))
            msg = f"malformed roster for match {match_id}"
            raise MatchLookupError(msg) from exc

        if not data.players:
            msg = f"empty roster for match {match_id}"
            raise MatchLookupError(msg)
        log.debug("roster loaded", match_id=match_id, players=len(data.players))
        return data
