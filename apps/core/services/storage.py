"""
Key-value storage backed by Django's cache framework.

Which backend sits behind an alias is a settings concern: the durable alias is
file- or Redis-backed, the session alias is process memory.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from django.core.cache import caches

if TYPE_CHECKING:
    from django.core.cache.backends.base import BaseCache

log = structlog.get_logger(__name__).bind(component="DjangoCacheStore")

DURABLE_ALIAS = "default"
SESSION_ALIAS = "session"


class DjangoCacheStore:
    """`KeyValueStore` over one Django cache alias. Storage errors degrade to absence."""

    def __init__(self, alias: str = DURABLE_ALIAS) -> None:
        self.alias = alias

    @property
    def _cache(self) -> BaseCache:
        return caches[self.alias]

    def get(self, key: str) -> str | None:
        try:
            value = self._cache.get(key)
        except Exception:
            log.warning("store read failed", alias=self.alias, key=key, exc_info=True)
            return None
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        try:
            self._cache.set(key, value, timeout=None)
        except Exception:
            log.warning("store write failed", alias=self.alias, key=key, exc_info=True)

    def delete(self, key: str) -> None:
        try:
            self._cache.delete(key)
        except Exception:
            log.warning("store delete failed", alias=self.alias, key=key, exc_info=True)

    def clear(self) -> None:
        try:
            self._cache.clear()
        except Exception:
            log.warning("store clear failed", alias=self.alias, exc_info=True)


def durable_store() -> DjangoCacheStore:
    return DjangoCacheStore(DURABLE_ALIAS)


def session_store() -> DjangoCacheStore:
    return DjangoCacheStore(SESSION_ALIAS)
