from __future__ import annotations

import logging
from typing import Any

from care_refresh.clients.fetcher import RateLimitedFetcher
from care_refresh.core.exceptions import ProviderNormalizationError
from care_refresh.core.models import SourceRecord
from care_refresh.providers.base import HttpSourceAdapter

logger = logging.getLogger(__name__)

HRSA_DIRECTORY_URL = "https://findahealthcenter.hrsa.gov/widget/api/state={region}"

DEFAULT_CENTER_SERVICES = [
    "Primary Care",
    "Reproductive Health",
    "Family Planning",
    "STI Testing",
    "Preventive Care",
]
DEFAULT_CENTER_HOURS = {
    "monday": "8:00 AM - 6:00 PM",
    "tuesday": "8:00 AM - 6:00 PM",
    "wednesday": "8:00 AM - 6:00 PM",
    "thursday": "8:00 AM - 6:00 PM",
    "friday": "8:00 AM - 5:00 PM",
    "saturday": "9:00 AM - 1:00 PM",
    "sunday": "Closed",
}
DEFAULT_CENTER_INSURANCE = ["Medicare", "Medicaid", "Private Insurance"]
DEFAULT_CENTER_AMENITIES = ["Wheelchair Accessible", "Public Transit Access", "Parking Available"]


def parse_centers(payload: Any) -> list[dict[str, Any]]:
    if not isinstance(payload, dict):
        raise ProviderNormalizationError("directory payload is not a json object")
    centers = payload.get("centers")
    if not isinstance(centers, list):
        raise ProviderNormalizationError("directory payload missing list field 'centers'")
    mapped: list[dict[str, Any]] = []
    for center in centers:
        if not isinstance(center, dict):
            raise ProviderNormalizationError("directory payload center is not an object")
        mapped.append(_map_center(center))
    return mapped


def _map_center(center: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": center.get("name"),
        "type": center.get("type") or "Health Center",
        "address": center.get("address"),
        "city": center.get("city"),
        "state": center.get("state"),
        "zipCode": center.get("zip"),
        "phone": center.get("phone"),
        "website": center.get("website"),
        "latitude": center.get("latitude"),
        "longitude": center.get("longitude"),
        "services": center.get("services") or list(DEFAULT_CENTER_SERVICES),
        "acceptsInsurance": True,
        "isVerified": True,
        "languages": center.get("languages") or ["English", "Spanish"],
        "operatingHours": center.get("hours") or dict(DEFAULT_CENTER_HOURS),
        "acceptedInsuranceProviders": list(DEFAULT_CENTER_INSURANCE),
        "amenities": list(DEFAULT_CENTER_AMENITIES),
    }


class DirectoryApiFacilityAdapter(HttpSourceAdapter):
    source_name = "hrsa_directory_api"

    def __init__(self, fetcher: RateLimitedFetcher, url_template: str = HRSA_DIRECTORY_URL) -> None:
        super().__init__(fetcher, url_template)

    async def fetch_records(self, region: str) -> list[SourceRecord]:
        document = await self.fetch_document(region)
        try:
            payload = document.json()
        except ValueError as exc:
            raise ProviderNormalizationError(f"{self.source_name} returned malformed json") from exc
        centers = parse_centers(payload)
        logger.info(
            "source_fetch_completed",
            extra={"source": self.source_name, "region": region, "record_count": len(centers)},
        )
        return [self.build_record(region, item) for item in centers]
