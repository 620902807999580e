# apps/core/services/http_client.py
# ==============================================================================
"""
Read-only JSON client for the Deadlock backends.

Every read is classified the same way:

* 400/404         → ``None`` (legitimate absence, never an error)
* 429             → ``RateLimitedError`` (callers route it to retry logic)
* 5xx / network   → retried with jittered exponential backoff, then ``FetchFailedError``
* any other 4xx   → ``FetchFailedError``

No caching happens here; callers layer caches on top.
"""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Self

import httpx
import structlog
from django.conf import settings
from pydantic import BaseModel, TypeAdapter, ValidationError

from apps.core.conf import APP_USER_AGENT, NOT_FOUND_STATUSES, RATE_LIMITED_STATUS
from apps.core.exceptions import FetchFailedError, RateLimitedError

if TYPE_CHECKING:
    from collections.abc import Mapping

module_log = structlog.get_logger(__name__).bind(component="ApiClient")

type Backend = Literal["assets", "players"]


# ─────────────────────────────── dataclasses ────────────────────────────────
@dataclass(slots=True, frozen=True)
class RetryConfig:
    """Config for exponential-backoff retries of transient failures."""

    max_retries: int = 2
    base_delay_s: float = 0.5
    max_delay_s: float = 8.0
    jitter_factor: float = 0.5

    def backoff(self, attempt: int) -> float:
        base = min(self.base_delay_s * (2**attempt), self.max_delay_s)
        jitter = base * self.jitter_factor * random.uniform(-1, 1)
        return max(0.0, base + jitter)


@dataclass(slots=True, frozen=True)
class ApiConfig:
    base_url: str
    timeout_s: float
    retry: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_settings(cls, backend: Backend) -> Self:
        cfg = settings.DEADLOCK_API_CONFIG
        url = cfg.ASSETS_URL if backend == "assets" else cfg.PLAYER_DATA_URL
        return cls(url, cfg.TIMEOUT_S, RetryConfig(**cfg.RETRY_CONFIG))


# ─────────────────────────────── base client ────────────────────────────────
class ApiClient(ABC):
    """
    Template class for concrete backend clients.

    Usable as an async context manager, or long-lived with an explicit
    ``aclose()``; the HTTP session is created lazily on first use.
    """

    def __init__(
        self,
        config: ApiConfig | None = None,
        *,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or self._default_config()
        self.log = module_log.bind(client=self.__class__.__name__)
        self._session = session
        self._session_created = False

    # ------------------------------------------------------------- context
    async def __aenter__(self) -> Self:
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._session_created and self._session:
            await self._session.aclose()
            self._session = None
            self._session_created = False

    # ------------------------------------------------------------- abstract
    @abstractmethod
    def _default_config(self) -> ApiConfig: ...

    # ------------------------------------------------------------- public
    async def get_json(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any | None:
        session = self._ensure_session()
        retry = self.config.retry
        last_exc: FetchFailedError | None = None

        for attempt in range(retry.max_retries + 1):
            try:
                resp = await session.get(path, params=params)
            except httpx.HTTPError as exc:
                last_exc = FetchFailedError(f"network error: {exc}", url=path)
            else:
                status = resp.status_code
                if status in NOT_FOUND_STATUSES:
                    self.log.debug("no data", path=path, status=status)
                    return None
                if status == RATE_LIMITED_STATUS:
                    self.log.warning("rate limited", path=path)
                    msg = f"rate limited on {path}"
                    raise RateLimitedError(msg, url=path, status=status)
                if resp.is_success:
                    try:
                        return resp.json()
                    except ValueError as exc:
                        msg = f"undecodable JSON from {path}"
                        raise FetchFailedError(msg, url=path, status=status) from exc
                if status < 500:
                    msg = f"HTTP {status} from {path}"
                    raise FetchFailedError(msg, url=path, status=status)
                last_exc = FetchFailedError(f"HTTP {status} from {path}", url=path, status=status)

            if attempt >= retry.max_retries:
                break
            delay = retry.backoff(attempt)
            self.log.warning(
                "request failed, retrying",
                path=path,
                attempt=attempt + 1,
                delay=f"{delay:.2f}s",
                err=str(last_exc),
            )
            await asyncio.sleep(delay)

        assert last_exc is not None
        raise last_exc

    async def get_model[M: BaseModel](
        self,
        path: str,
        model: type[M],
        *,
        params: Mapping[str, Any] | None = None,
    ) -> M | None:
        payload = await self.get_json(path, params=params)
        if payload is None:
            return None
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            msg = f"unexpected {model.__name__} payload from {path}"
            raise FetchFailedError(msg, url=path) from exc

    async def get_model_list[M: BaseModel](
        self,
        path: str,
        model: type[M],
        *,
        params: Mapping[str, Any] | None = None,
    ) -> list[M] | None:
        payload = await self.get_json(path, params=params)
        if payload is None:
            return None
        if not isinstance(payload, list):
            msg = f"expected a list of {model.__name__} from {path}"
            raise FetchFailedError(msg, url=path)
        try:
            return TypeAdapter(list[model]).validate_python(payload)
        except ValidationError as exc:
            msg = f"unexpected {model.__name__} rows from {path}"
            raise FetchFailedError(msg, url=path) from exc

    # ------------------------------------------------------------- helpers
    def _ensure_session(self) -> httpx.AsyncClient:
        if self._session is None:
            self._session = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout_s,
                follow_redirects=True,
                headers={"User-Agent": APP_USER_AGENT, "Accept": "application/json"},
            )
            self._session_created = True
        return self._session
