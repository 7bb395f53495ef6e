"""Source adapters."""

from care_refresh.providers.chain import PrioritizedSourceChain, SourceBatch
from care_refresh.providers.directory_api import DirectoryApiFacilityAdapter
from care_refresh.providers.factory import build_facility_adapter, build_facility_chain
from care_refresh.providers.generative import GenerativeFacilityAdapter, GenerativeNewsAdapter
from care_refresh.providers.markup import MarkupFacilityAdapter
from care_refresh.providers.static import CuratedLawAdapter, StaticFallbackAdapter

__all__ = [
    "CuratedLawAdapter",
    "DirectoryApiFacilityAdapter",
    "GenerativeFacilityAdapter",
    "GenerativeNewsAdapter",
    "MarkupFacilityAdapter",
    "PrioritizedSourceChain",
    "SourceBatch",
    "StaticFallbackAdapter",
    "build_facility_adapter",
    "build_facility_chain",
]
