"""Who is the local player? Stored by the shell after it detects Steam."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from apps.core.conf import STORAGE_KEYS
from apps.core.datatype import STEAM_ID64_BASE, CurrentUser
from common.cache_utils import get_json, set_json

if TYPE_CHECKING:
    from apps.core.services.protocols import KeyValueStore

log = structlog.get_logger(__name__).bind(component="Identity")


def steam_id64_to_account_id(steam_id64: str | int) -> int:
    return int(steam_id64) - STEAM_ID64_BASE


def account_id_to_steam_id64(account_id: int) -> str:
    return str(account_id + STEAM_ID64_BASE)


class StoredIdentityProvider:
    """Reads the current user from durable storage; an unknown user is a normal state."""

    def __init__(self, store: KeyValueStore, key: str = STORAGE_KEYS["current_user"]) -> None:
        self.store = store
        self.key = key

    def current_user(self) -> CurrentUser | None:
        data = get_json(self.store, self.key)
        if not isinstance(data, dict) or not data.get("steam_id64"):
            return None
        try:
            steam_id64 = str(data["steam_id64"])
            return CurrentUser(
                steam_id64=steam_id64,
                account_id=steam_id64_to_account_id(steam_id64),
                persona_name=data.get("persona_name"),
            )
        except (TypeError, ValueError):
            log.warning("stored identity unreadable", key=self.key)
            return None

    def remember(self, steam_id64: str, persona_name: str | None = None) -> CurrentUser:
        user = CurrentUser(
            steam_id64=steam_id64,
            account_id=steam_id64_to_account_id(steam_id64),
            persona_name=persona_name,
        )
        set_json(
            self.store,
            self.key,
            {"steam_id64": steam_id64, "persona_name": persona_name, "last_updated": time.time()},
        )
        log.info("current user stored", account_id=user.account_id)
        return user

    def forget(self) -> None:
        self.store.delete(self.key)
