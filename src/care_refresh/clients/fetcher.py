from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Union

import httpx

from care_refresh.core.metrics import InMemoryPipelineMetricsCollector

logger = logging.getLogger(__name__)

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:89.0) Gecko/20100101 Firefox/89.0",
)

_BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "DNT": "1",
}


@dataclass(frozen=True)
class FetchResponse:
    url: str
    status_code: int
    text: str

    def json(self) -> Any:
        return json.loads(self.text)

    def json_or_none(self) -> Any:
        try:
            return self.json()
        except ValueError:
            return None


@dataclass(frozen=True)
class FetchFailure:
    url: str
    reason: str
    attempts: int


FetchOutcome = Union[FetchResponse, FetchFailure]


class RateLimitedFetcher:
    """Polite HTTP GET with per-call delay, identity rotation and bounded retries.

    ``fetch`` never raises for transport or HTTP errors; it returns a
    ``FetchFailure`` once ``max_retries`` retries are spent.
    """

    def __init__(
        self,
        user_agents: Sequence[str] = USER_AGENTS,
        base_delay_seconds: float = 1.0,
        retry_delay_seconds: float = 2.0,
        max_retries: int = 2,
        timeout_seconds: float = 10.0,
        max_redirects: int = 5,
        source_name: str = "http",
        metrics: InMemoryPipelineMetricsCollector | None = None,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not user_agents:
            raise ValueError("user_agents must not be empty")
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._identities = itertools.cycle(tuple(user_agents))
        self._base_delay_seconds = base_delay_seconds
        self._retry_delay_seconds = retry_delay_seconds
        self._max_retries = max_retries
        self._timeout = httpx.Timeout(timeout_seconds)
        self._max_redirects = max_redirects
        self._source_name = source_name
        self._metrics = metrics
        self._client_factory = client_factory
        self._sleep = sleep

    async def fetch(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> FetchOutcome:
        attempt = 0
        while True:
            await self._sleep(self._base_delay_seconds * (2**attempt))
            try:
                return await self._request_once(url, params, headers)
            except httpx.HTTPError as exc:
                reason = self._describe(exc)
            self._record_error(reason)
            if attempt >= self._max_retries:
                logger.error(
                    "fetch_failed",
                    extra={"url": url, "attempts": attempt + 1, "reason": reason},
                )
                return FetchFailure(url=url, reason=reason, attempts=attempt + 1)
            attempt += 1
            logger.warning(
                "fetch_retrying",
                extra={"url": url, "attempt": attempt, "max_retries": self._max_retries, "reason": reason},
            )
            await self._sleep(self._retry_delay_seconds)

    async def _request_once(
        self,
        url: str,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
    ) -> FetchResponse:
        request_headers = {**_BROWSER_HEADERS, "User-Agent": next(self._identities)}
        if headers:
            request_headers.update(headers)
        factory = self._client_factory or (
            lambda: httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                max_redirects=self._max_redirects,
            )
        )
        async with factory() as client:
            response = await client.get(url, params=params, headers=request_headers)
            response.raise_for_status()
        return FetchResponse(url=str(response.url), status_code=response.status_code, text=response.text)

    def _describe(self, exc: httpx.HTTPError) -> str:
        if isinstance(exc, httpx.HTTPStatusError):
            return f"status={exc.response.status_code}"
        if isinstance(exc, httpx.TimeoutException):
            return "timeout"
        return f"{type(exc).__name__}: {exc}"

    def _record_error(self, reason: str) -> None:
        if not self._metrics:
            return
        self._metrics.increment_external_api_error()
        code = reason.removeprefix("status=") if reason.startswith("status=") else reason.split(":", 1)[0]
        self._metrics.increment_provider_http_error(code=code, source=self._source_name)
