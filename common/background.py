"""
Detached background work with its own error boundary.

Tasks spawned here are not owned by any single search: they keep running when
the search that started them is cancelled, and whatever they raise is logged
instead of propagating into the caller.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Coroutine

log = structlog.get_logger(__name__).bind(component="BackgroundTasks")


class BackgroundTasks:
    """Holds strong references to fire-and-forget tasks until they finish."""

    def __init__(self, name: str = "background") -> None:
        self.name = name
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, label: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(self._guard(coro, label), name=f"{self.name}:{label}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self, timeout: float | None = None) -> None:
        """Wait until no task is pending, including tasks spawned while waiting."""
        async with asyncio.timeout(timeout):
            while self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _guard(self, coro: Coroutine[Any, Any, Any], label: str) -> Any:
        try:
            return await coro
        except asyncio.CancelledError:
            log.debug("background task cancelled", pool=self.name, task=label)
            raise
        except Exception:
            log.exception("background task failed", pool=self.name, task=label)
            return None
