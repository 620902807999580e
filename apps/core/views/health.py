from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from asgiref.sync import sync_to_async
from django.conf import settings
from django.utils import timezone
from starlette.responses import JSONResponse

from apps.core.services.storage import DURABLE_ALIAS, SESSION_ALIAS, DjangoCacheStore

if TYPE_CHECKING:
    from starlette.requests import Request

# --------------------------------------------------------------------------- helpers


def _check_store_sync(alias: str) -> bool:
    store = DjangoCacheStore(alias)
    key = f"deadlyze:health:{time.time_ns()}"
    store.set(key, "ok")
    ok = store.get(key) == "ok"
    store.delete(key)
    return ok


async def _check_store(alias: str) -> dict[str, str]:
    # file-based caches touch the disk
    if await sync_to_async(_check_store_sync)(alias):
        return {"status": "healthy"}
    return {"status": "unhealthy", "error": f"store '{alias}' round-trip failed"}


def _check_rosters() -> dict[str, str]:
    roster_dir = settings.ENRICHMENT_CONFIG.roster.roster_dir
    if roster_dir.is_dir():
        return {"status": "healthy"}
    # the shell creates it on first spectate; not an error
    return {"status": "disabled", "detail": f"{roster_dir} does not exist yet"}


# --------------------------------------------------------------------------- view
async def health_check(request: Request) -> JSONResponse:
    """
    Health endpoint for the shell.
    • `?check=basic`  → liveness-only.
    """
    start_view = time.perf_counter()
    base_payload = {
        "timestamp": timezone.now().isoformat(),
        "version": getattr(settings, "APP_VERSION", "unknown"),
    }

    if request.query_params.get("check") == "basic":
        return JSONResponse({"status": "ok", **base_payload})

    durable, session = await asyncio.gather(_check_store(DURABLE_ALIAS), _check_store(SESSION_ALIAS))
    checks = {
        "durable_store": durable,
        "session_store": session,
        "rosters": _check_rosters(),
    }

    overall_healthy = all(v["status"] == "healthy" for v in checks.values() if v.get("status") != "disabled")
    response = {
        "status": "healthy" if overall_healthy else "unhealthy",
        "checks": checks,
        "response_time_ms": round((time.perf_counter() - start_view) * 1000, 2),
        **base_payload,
    }
    return JSONResponse(response, status_code=200 if overall_healthy else 503)
