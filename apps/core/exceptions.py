"""Exception hierarchy shared by every app."""

from __future__ import annotations


class DeadlyzeError(RuntimeError):
    """Root of all project-specific errors."""


class ApiError(DeadlyzeError):
    """Raised by the fetch layer when a backend read did not produce data."""

    def __init__(self, message: str, *, url: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class RateLimitedError(ApiError):
    """
    HTTP 429 from a backend.

    Never swallowed silently: callers catch it explicitly and hand the work to a
    retry queue.
    """


class FetchFailedError(ApiError):
    """Any other non-2xx status, network failure, or undecodable payload."""


class MatchLookupError(DeadlyzeError):
    """The live roster for a match could not be obtained. Fatal to a search."""
