"""
apps.core.views
---------------

Endpoints of the local HTTP bridge the desktop shell talks to:

    from apps.core.views import health_check, budget_status, search_stream
"""

from __future__ import annotations

from .health import health_check
from .stream import budget_status, cached_match, player_build, search_stream

__all__: list[str] = [
    "budget_status",
    "cached_match",
    "health_check",
    "player_build",
    "search_stream",
]
