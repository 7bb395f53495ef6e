from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from care_refresh.clients.fetcher import RateLimitedFetcher


async def no_sleep(_: float) -> None:
    return None


@pytest.fixture
def mock_fetcher() -> Callable[..., RateLimitedFetcher]:
    def build(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> RateLimitedFetcher:
        return RateLimitedFetcher(
            client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            sleep=no_sleep,
            **kwargs,
        )

    return build
