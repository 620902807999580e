"""
ASGI bridge between the desktop shell and the enrichment core.

One orchestrator per process, created in the lifespan and shared by every
request through `app.state`.
"""

from __future__ import annotations

import asyncio
import os
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog

# --- Set up Django environment
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.local")
import django  # noqa: E402

django.setup()

from django.conf import settings  # noqa: E402
from starlette.applications import Starlette  # noqa: E402
from starlette.middleware import Middleware  # noqa: E402
from starlette.middleware.cors import CORSMiddleware  # noqa: E402
from starlette.routing import BaseRoute, Route  # noqa: E402

from apps.core.views import budget_status, cached_match, health_check, player_build, search_stream  # noqa: E402
from apps.matches.services.orchestrator import MatchEnrichmentOrchestrator  # noqa: E402

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

# --- Constants
SHUTDOWN_TIMEOUT = 10.0

logger = structlog.get_logger(__name__)


# --- Centralized Lifespan Manager ---
@asynccontextmanager
async def lifespan(app: Starlette) -> AsyncIterator[None]:
    logger.info("🚀 ASGI bridge starting up...")
    start_time = time.monotonic()
    orchestrator = MatchEnrichmentOrchestrator.from_settings()
    app.state.orchestrator = orchestrator
    settings.ENRICHMENT_CONFIG.roster.roster_dir.mkdir(parents=True, exist_ok=True)
    logger.info("✅ Bridge ready", duration_s=f"{time.monotonic() - start_time:.2f}")
    yield
    logger.info("🛑 ASGI bridge shutting down...")
    try:
        async with asyncio.timeout(SHUTDOWN_TIMEOUT):
            await orchestrator.aclose()
    except TimeoutError:
        logger.warning(f"Shutdown timed out after {SHUTDOWN_TIMEOUT}s. Forcing exit.")
    logger.info("✅ ASGI bridge shutdown complete.")


# --- Application Factory Functions ---
def create_middleware() -> list[Middleware]:
    return [
        Middleware(
            CORSMiddleware,
            allow_origins=getattr(settings, "CORS_ALLOWED_ORIGINS", ["*"]),
            allow_methods=["GET", "HEAD"],
            allow_headers=["*"],
        ),
    ]


def create_routes() -> list[BaseRoute]:
    return [
        Route("/health", endpoint=health_check, methods=["GET", "HEAD"]),
        Route("/budget", endpoint=budget_status, methods=["GET"]),
        Route("/matches/{match_id}", endpoint=cached_match, methods=["GET"]),
        Route("/matches/{match_id}/stream", endpoint=search_stream, methods=["GET"]),
        Route(
            "/matches/{match_id:int}/players/{account_id:int}/build",
            endpoint=player_build,
            methods=["GET"],
        ),
    ]


def create_app() -> Starlette:
    return Starlette(
        debug=settings.DEBUG,
        routes=create_routes(),
        middleware=create_middleware(),
        lifespan=lifespan,
    )


# --- Main Application Instance ---
application = create_app()
