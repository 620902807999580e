"""
Defines the structural contracts (Protocols) for the collaborators the
enrichment pipeline consumes but does not own.

Concrete implementations can be swapped (native shell bridge, files, fakes in
tests) as long as they adhere to the defined "shape".
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from apps.core.datatype import CurrentUser
    from apps.matches.conf import DetailedMatchMetadata, MatchData


@runtime_checkable
class KeyValueStore(Protocol):
    """Opaque string-keyed storage. Implementations never raise on absence."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


class LiveMatchLookup(Protocol):
    """Resolves a match id to its 12-player roster."""

    async def fetch_match_data(self, match_id: str) -> MatchData:
        """Raises `MatchLookupError` on invalid or unknown matches."""
        ...


class IdentityProvider(Protocol):
    """Exposes the locally detected player, if any."""

    def current_user(self) -> CurrentUser | None: ...


class MetadataFetcher(Protocol):
    """Anything that can load one match's detailed metadata."""

    async def __call__(self, match_id: int, account_id: int) -> DetailedMatchMetadata | None: ...
