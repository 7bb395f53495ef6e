import asyncio
from typing import Awaitable, Callable, TypeVar

from care_refresh.core.exceptions import PipelineError, ProviderRequestError

T = TypeVar("T")


async def with_exponential_backoff(
    operation: Callable[[], Awaitable[T]],
    retries: int = 3,
    base_delay_seconds: float = 0.1,
    on_retry: Callable[[int, float], None] | None = None,
    should_retry: Callable[[Exception], bool] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or ``retries`` attempts are spent.

    Pipeline errors propagate unchanged; anything else is wrapped in
    ``ProviderRequestError`` chained to the original exception.
    """
    attempt = 0
    while attempt < retries:
        try:
            return await operation()
        except Exception as exc:
            if should_retry and not should_retry(exc):
                if isinstance(exc, PipelineError):
                    raise
                raise ProviderRequestError(str(exc)) from exc
            attempt += 1
            if attempt >= retries:
                if isinstance(exc, PipelineError):
                    raise
                raise ProviderRequestError(str(exc)) from exc
            delay = base_delay_seconds * (2 ** (attempt - 1))
            if on_retry:
                on_retry(attempt, delay)
            await sleep(delay)
    raise ProviderRequestError("retry attempts exhausted")
