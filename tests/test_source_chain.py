from __future__ import annotations

import pytest

from care_refresh.core.exceptions import ProviderNormalizationError, ProviderRequestError
from care_refresh.core.metrics import InMemoryPipelineMetricsCollector
from care_refresh.core.models import SourceRecord
from care_refresh.providers.base import BaseSourceAdapter
from care_refresh.providers.chain import PrioritizedSourceChain
from care_refresh.providers.factory import build_facility_adapter, build_facility_chain
from care_refresh.providers.markup import MarkupFacilityAdapter
from care_refresh.providers.static import STATIC_FACILITIES, StaticFallbackAdapter


class StubAdapter(BaseSourceAdapter):
    def __init__(self, source_name: str, names: list[str] | None = None, error: Exception | None = None) -> None:
        self.source_name = source_name
        self._names = names or []
        self._error = error
        self.calls = 0

    async def fetch_records(self, region: str) -> list[SourceRecord]:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return [self.build_record(region, {"name": name, "address": "1 Main"}) for name in self._names]


@pytest.mark.asyncio
async def test_chain_concatenates_live_sources_in_priority_order() -> None:
    chain = PrioritizedSourceChain(
        [StubAdapter("first", ["A", "B"]), StubAdapter("second", ["B", "C"])],
        fallback=StaticFallbackAdapter(),
    )

    batch = await chain.collect("IN")

    assert [record.payload["name"] for record in batch.records] == ["A", "B", "B", "C"]
    assert batch.used_fallback is False


@pytest.mark.asyncio
async def test_chain_isolates_failing_source() -> None:
    broken = StubAdapter("broken", error=ProviderNormalizationError("bad payload"))
    chain = PrioritizedSourceChain([broken, StubAdapter("healthy", ["A"])], fallback=StaticFallbackAdapter())

    batch = await chain.collect("IL")

    assert [record.source for record in batch.records] == ["healthy"]
    assert batch.failed_sources == ("broken",)


@pytest.mark.asyncio
async def test_chain_uses_static_fallback_when_live_sources_are_empty() -> None:
    metrics = InMemoryPipelineMetricsCollector()
    chain = PrioritizedSourceChain(
        [StubAdapter("empty"), StubAdapter("down", error=ProviderRequestError("unreachable"))],
        fallback=StaticFallbackAdapter(),
        metrics=metrics,
    )

    batch = await chain.collect("IN")

    assert batch.used_fallback is True
    assert [record.payload["name"] for record in batch.records] == [item["name"] for item in STATIC_FACILITIES["IN"]]
    assert metrics.fallback_used_total["IN"] == 1


@pytest.mark.asyncio
async def test_chain_without_fallback_raises_when_every_source_failed() -> None:
    chain = PrioritizedSourceChain([StubAdapter("down", error=ProviderRequestError("unreachable"))])

    with pytest.raises(ProviderRequestError, match="all sources failed"):
        await chain.collect("IN")


@pytest.mark.asyncio
async def test_chain_without_fallback_returns_empty_batch_for_empty_sources() -> None:
    batch = await PrioritizedSourceChain([StubAdapter("empty")]).collect("IN")

    assert batch.records == []


@pytest.mark.asyncio
async def test_static_fallback_is_empty_for_unknown_region() -> None:
    assert await StaticFallbackAdapter().fetch_records("WI") == []


def test_factory_builds_configured_adapters(mock_fetcher) -> None:
    fetcher = mock_fetcher(lambda request: None)

    chain = build_facility_chain(["hrsa_directory_api", "hhs_markup"], fetcher)

    assert chain.source_names == ("hrsa_directory_api", "hhs_markup")
    assert isinstance(build_facility_adapter("hhs_markup", fetcher), MarkupFacilityAdapter)


def test_factory_rejects_unknown_source(mock_fetcher) -> None:
    with pytest.raises(ValueError, match="unsupported facility source"):
        build_facility_adapter("yellow_pages", mock_fetcher(lambda request: None))
