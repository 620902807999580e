from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from starlette.responses import JSONResponse, Response, StreamingResponse

from apps.core.exceptions import ApiError
from common.cache_utils import dumps

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request

    from apps.matches.services.orchestrator import MatchEnrichmentOrchestrator

log = structlog.get_logger(__name__).bind(component="SearchStream")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}


def _orchestrator(request: Request) -> MatchEnrichmentOrchestrator:
    return request.app.state.orchestrator


# --------------------------------------------------------------------------- stream generator
async def _search_stream_gen(orchestrator: MatchEnrichmentOrchestrator, match_id: str) -> AsyncIterator[bytes]:
    """
    SSE frames, one per search state. When the client disconnects Starlette
    closes this generator, which closes the search stream and cancels its run.
    """
    i = 0
    stream = orchestrator.search(match_id)
    try:
        async for state in stream:
            i += 1
            yield f"id: {i}\nevent: {state.status}\ndata: {state.to_json()}\n\n".encode()
    finally:
        await stream.aclose()
    yield b'event: complete\ndata: {"status": "stream_complete"}\n\n'


# --------------------------------------------------------------------------- endpoints
async def search_stream(request: Request) -> StreamingResponse:
    """
    GET /matches/{match_id}/stream  →  Server-Sent-Events feed of search states.

    Events are named after the state (`loading`, `loaded`, `failed`).
    """
    match_id = request.path_params["match_id"]
    log.debug("search stream opened", match_id=match_id)
    return StreamingResponse(
        _search_stream_gen(_orchestrator(request), match_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


async def budget_status(request: Request) -> JSONResponse:
    """GET /budget  →  request budget, retry queue and cache sizes."""
    snapshot = _orchestrator(request).budget_snapshot()
    return JSONResponse(dict(snapshot))


async def cached_match(request: Request) -> Response:
    """GET /matches/{match_id}  →  the cached result, 404 when absent or expired."""
    result = _orchestrator(request).cached(request.path_params["match_id"])
    if result is None:
        return JSONResponse({"detail": "not cached"}, status_code=404)
    return Response(result.to_json(), media_type="application/json")


async def player_build(request: Request) -> Response:
    """
    GET /matches/{match_id}/players/{account_id}/build  →  item build and final
    stats of one player in a past match, 404 when the metadata is unavailable.
    """
    match_id = request.path_params["match_id"]
    account_id = request.path_params["account_id"]
    try:
        build = await _orchestrator(request).player_build(match_id, account_id)
    except ApiError as exc:
        log.warning("build lookup failed", match_id=match_id, account_id=account_id, err=str(exc))
        return JSONResponse({"detail": "metadata backend unavailable"}, status_code=502)
    if build is None:
        return JSONResponse({"detail": "build not available"}, status_code=404)
    return Response(dumps(build), media_type="application/json")
