from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from care_refresh.core.exceptions import (
    ConfigurationError,
    ProviderNormalizationError,
    ProviderRequestError,
    ProviderTemporaryError,
)
from care_refresh.core.metrics import InMemoryPipelineMetricsCollector
from care_refresh.core.retry import with_exponential_backoff


class ChatCompletionClient:
    """Minimal client for an OpenAI-compatible ``/chat/completions`` endpoint."""

    source_name = "generative"

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        model: str,
        timeout_seconds: float = 60.0,
        max_retries: int = 3,
        retry_base_delay_seconds: float = 1.0,
        metrics: InMemoryPipelineMetricsCollector | None = None,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._retry_base_delay_seconds = retry_base_delay_seconds
        self._metrics = metrics
        self._client_factory = client_factory

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def complete_json(
        self,
        system: str,
        messages: list[dict[str, str]],
        temperature: float = 0.5,
        max_tokens: int = 2048,
    ) -> str:
        """Return the raw text of the first choice, requested as a JSON object."""
        if not self._api_key:
            raise ConfigurationError("GROQ_API_KEY environment variable is not set")
        payload = {
            "model": self._model,
            "messages": [{"role": "system", "content": system}, *messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
        }
        body = await with_exponential_backoff(
            lambda: self._post(payload),
            retries=self._max_retries,
            base_delay_seconds=self._retry_base_delay_seconds,
            should_retry=lambda exc: isinstance(exc, ProviderTemporaryError),
            on_retry=self._on_retry,
        )
        return self._first_choice_text(body)

    async def _post(self, payload: dict[str, Any]) -> Any:
        factory = self._client_factory or (lambda: httpx.AsyncClient(timeout=self._timeout_seconds))
        try:
            async with factory() as client:
                response = await client.post(
                    f"{self._base_url}/chat/completions",
                    json=payload,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
        except httpx.TimeoutException as exc:
            raise ProviderTemporaryError("generative service timeout") from exc
        except httpx.HTTPError as exc:
            raise ProviderRequestError("generative service request error") from exc

        if response.status_code == 429 or response.status_code >= 500:
            self._record_http_error(response.status_code)
            raise ProviderTemporaryError(f"generative service temporary error: status={response.status_code}")
        if response.status_code >= 400:
            self._record_http_error(response.status_code)
            raise ProviderRequestError(f"generative service rejected request: status={response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderNormalizationError("generative service returned a non-json envelope") from exc

    def _first_choice_text(self, body: Any) -> str:
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderNormalizationError("generative service response has no choices") from exc
        if not isinstance(content, str) or not content.strip():
            raise ProviderNormalizationError("No response from generative service")
        return content

    def _record_http_error(self, code: int) -> None:
        if self._metrics:
            self._metrics.increment_provider_http_error(code=code, source=self.source_name)

    def _on_retry(self, _: int, __: float) -> None:
        if self._metrics:
            self._metrics.increment_external_api_error()
