from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass
from typing import Any

from care_refresh.core.exceptions import ValidationError
from care_refresh.core.metrics import InMemoryPipelineMetricsCollector
from care_refresh.core.models import DataKind, Facility
from care_refresh.core.normalizer import normalize_batch
from care_refresh.core.pipeline import DatasetStore
from care_refresh.geo.geocoder import Geocoder
from care_refresh.providers.generative import GenerativeFacilityAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    region: str
    count: int
    facilities: list[Facility]

    @property
    def message(self) -> str:
        return f"Successfully generated and stored {self.count} facilities for {self.region}"

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "count": self.count}


class FacilityGenerationService:
    """Generate, geocode and store a region's facility batch on request.

    Shares the geocoder and the store with the periodic refresh, so the two
    writers are serialized by the store's per-region lock. Errors propagate.
    """

    def __init__(
        self,
        adapter: GenerativeFacilityAdapter,
        geocoder: Geocoder,
        store: DatasetStore,
        metrics: InMemoryPipelineMetricsCollector | None = None,
    ) -> None:
        self._adapter = adapter
        self._geocoder = geocoder
        self._store = store
        self._metrics = metrics

    async def generate(self, region: str) -> GenerationResult:
        region = region.strip().upper()
        if not region:
            raise ValidationError("State is required")
        logger.info("facility_generation_started", extra={"region": region})
        records = await self._adapter.fetch_records(region)
        facilities, dropped = normalize_batch(records, DataKind.FACILITIES)
        if not facilities:
            raise ValidationError(f"no usable facilities generated for {region}")

        enriched: list[Facility] = []
        for index, facility in enumerate(facilities, start=1):
            logger.debug(
                "facility_geocoding",
                extra={"region": region, "position": index, "total": len(facilities), "facility": facility.name},
            )
            enriched.append(await self._geocoder.enrich_facility(facility))

        saved = await self._store.replace(region, DataKind.FACILITIES, enriched)
        if self._metrics:
            self._metrics.add_records(region, DataKind.FACILITIES.value, "saved", saved)
            self._metrics.add_records(region, DataKind.FACILITIES.value, "dropped", dropped)
        logger.info(
            "facility_generation_completed",
            extra={"region": region, "saved_count": saved, "dropped_count": dropped},
        )
        return GenerationResult(region=region, count=saved, facilities=enriched)


def build_error_payload(exc: BaseException, include_stack: bool) -> dict[str, Any]:
    payload: dict[str, Any] = {"error": "Failed to generate facilities", "details": str(exc)}
    if include_stack:
        payload["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return payload
