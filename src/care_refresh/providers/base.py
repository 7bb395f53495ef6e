from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from care_refresh.clients.fetcher import FetchFailure, FetchResponse, RateLimitedFetcher
from care_refresh.core.exceptions import ProviderRequestError
from care_refresh.core.models import DataKind, SourceRecord


class BaseSourceAdapter(ABC):
    """Produce intermediate records for one region from a single source.

    Implementations raise ``ProviderRequestError`` when the source could not
    be reached and ``ProviderNormalizationError`` when its payload could not
    be parsed.
    """

    source_name: str
    kind: DataKind = DataKind.FACILITIES

    @abstractmethod
    async def fetch_records(self, region: str) -> list[SourceRecord]:
        raise NotImplementedError

    def build_record(self, region: str, payload: dict[str, Any]) -> SourceRecord:
        return SourceRecord(
            trace_id=str(uuid.uuid4()),
            source=self.source_name,
            kind=self.kind,
            region=region,
            payload=payload,
            fetched_at=datetime.now(timezone.utc),
        )


class HttpSourceAdapter(BaseSourceAdapter):
    def __init__(self, fetcher: RateLimitedFetcher, url_template: str) -> None:
        self._fetcher = fetcher
        self._url_template = url_template

    def source_url(self, region: str) -> str:
        return self._url_template.format(region=region, region_lower=region.lower())

    async def fetch_document(self, region: str) -> FetchResponse:
        outcome = await self._fetcher.fetch(self.source_url(region))
        if isinstance(outcome, FetchFailure):
            raise ProviderRequestError(
                f"{self.source_name} unavailable: url={outcome.url}, attempts={outcome.attempts}, reason={outcome.reason}"
            )
        return outcome
