from __future__ import annotations

from collections.abc import Callable, Sequence

from care_refresh.clients.fetcher import RateLimitedFetcher
from care_refresh.core.metrics import InMemoryPipelineMetricsCollector
from care_refresh.providers.base import BaseSourceAdapter
from care_refresh.providers.chain import PrioritizedSourceChain
from care_refresh.providers.directory_api import DirectoryApiFacilityAdapter
from care_refresh.providers.markup import MarkupFacilityAdapter
from care_refresh.providers.static import StaticFallbackAdapter

AdapterFactory = Callable[[RateLimitedFetcher], BaseSourceAdapter]

_FACILITY_ADAPTERS: dict[str, AdapterFactory] = {
    MarkupFacilityAdapter.source_name: MarkupFacilityAdapter,
    DirectoryApiFacilityAdapter.source_name: DirectoryApiFacilityAdapter,
}


def build_facility_adapter(source_name: str, fetcher: RateLimitedFetcher) -> BaseSourceAdapter:
    adapter_type = _FACILITY_ADAPTERS.get(source_name)
    if adapter_type is None:
        supported = ", ".join(sorted(_FACILITY_ADAPTERS.keys()))
        raise ValueError(f"unsupported facility source '{source_name}', supported: {supported}")
    return adapter_type(fetcher)


def build_facility_chain(
    source_names: Sequence[str],
    fetcher: RateLimitedFetcher,
    metrics: InMemoryPipelineMetricsCollector | None = None,
) -> PrioritizedSourceChain:
    adapters = [build_facility_adapter(name, fetcher) for name in source_names]
    return PrioritizedSourceChain(adapters, fallback=StaticFallbackAdapter(), metrics=metrics)
