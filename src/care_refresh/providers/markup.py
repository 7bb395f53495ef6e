from __future__ import annotations

import logging
from typing import Any

from bs4 import BeautifulSoup, Tag

from care_refresh.clients.fetcher import RateLimitedFetcher
from care_refresh.core.models import SourceRecord
from care_refresh.providers.base import HttpSourceAdapter

logger = logging.getLogger(__name__)

HHS_DIRECTORY_URL = "https://www.hhs.gov/healthcare/{region_lower}"

WEEKDAY_HOURS = "9:00 AM - 5:00 PM"

# The directory lists locations only; these describe what every listed
# center offers.
DIRECTORY_SERVICES = [
    "General Healthcare",
    "Women's Health Services",
    "Preventive Care",
    "Family Planning",
]
DIRECTORY_HOURS = {
    "monday": WEEKDAY_HOURS,
    "tuesday": WEEKDAY_HOURS,
    "wednesday": WEEKDAY_HOURS,
    "thursday": WEEKDAY_HOURS,
    "friday": WEEKDAY_HOURS,
    "saturday": "Closed",
    "sunday": "Closed",
}
DIRECTORY_LANGUAGES = ["English", "Spanish"]
DIRECTORY_INSURANCE = ["Medicare", "Medicaid", "Blue Cross Blue Shield", "UnitedHealthcare", "Aetna"]


def _node_text(node: Tag, selector: str) -> str:
    found = node.select_one(selector)
    if found is None:
        return ""
    return " ".join(found.get_text(" ", strip=True).split())


def parse_facility_listings(html: str) -> list[dict[str, Any]]:
    """Extract facility payloads from ``.facility-listing`` nodes.

    Nodes without a name or an address are skipped.
    """
    soup = BeautifulSoup(html, "html.parser")
    listings: list[dict[str, Any]] = []
    for node in soup.select(".facility-listing"):
        name = _node_text(node, ".facility-name")
        address = _node_text(node, ".facility-address")
        if not name or not address:
            logger.debug("markup_listing_skipped", extra={"facility_name": name, "has_address": bool(address)})
            continue
        website_node = node.select_one(".facility-website")
        website = website_node.get("href", "") if website_node is not None else ""
        listings.append(
            {
                "name": name,
                "type": _node_text(node, ".facility-type") or "Healthcare Center",
                "address": address,
                "phone": _node_text(node, ".facility-phone"),
                "website": website if isinstance(website, str) else "",
                "services": list(DIRECTORY_SERVICES),
                "acceptsInsurance": True,
                "isVerified": True,
                "operatingHours": dict(DIRECTORY_HOURS),
                "languages": list(DIRECTORY_LANGUAGES),
                "acceptedInsuranceProviders": list(DIRECTORY_INSURANCE),
            }
        )
    return listings


class MarkupFacilityAdapter(HttpSourceAdapter):
    source_name = "hhs_markup"

    def __init__(self, fetcher: RateLimitedFetcher, url_template: str = HHS_DIRECTORY_URL) -> None:
        super().__init__(fetcher, url_template)

    async def fetch_records(self, region: str) -> list[SourceRecord]:
        document = await self.fetch_document(region)
        listings = parse_facility_listings(document.text)
        logger.info(
            "source_fetch_completed",
            extra={"source": self.source_name, "region": region, "record_count": len(listings)},
        )
        return [self.build_record(region, item) for item in listings]
