from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

import orjson
import structlog

if TYPE_CHECKING:
    from apps.core.services.protocols import KeyValueStore

log = structlog.get_logger(__name__).bind(component="CacheUtils")


# ===================================================================
# 0.  Core helpers
# ===================================================================
def dumps(obj: Any) -> str:
    return orjson.dumps(obj, default=_default, option=orjson.OPT_NON_STR_KEYS).decode()


def loads(raw: str | bytes) -> Any:
    return orjson.loads(raw)


def _default(obj: Any) -> Any:
    # pydantic models and sets are the only non-native values we serialise
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, set | frozenset):
        return sorted(obj)
    raise TypeError


# ===================================================================
# 1.  Cache-key builder
# ===================================================================
def build_cache_key(prefix: str, *parts: Any) -> str:
    """
    Joins a prefix and key parts with ':'.

    >>> build_cache_key("metadata", 123, 456)
    'metadata:123:456'
    """
    if not parts:
        return prefix
    return ":".join([prefix, *(str(p) for p in parts)])


# ===================================================================
# 2.  JSON convenience wrappers over a string store
# ===================================================================
def get_json[T](store: KeyValueStore, key: str, default: T | None = None) -> T | None:
    raw = store.get(key)
    if raw is None:
        return default
    try:
        return cast("T", loads(raw))
    except (orjson.JSONDecodeError, ValueError, TypeError):
        log.warning("Corrupt JSON in store, deleting", key=key)
        store.delete(key)
        return default


def set_json(store: KeyValueStore, key: str, value: Any) -> None:
    store.set(key, dumps(value))
