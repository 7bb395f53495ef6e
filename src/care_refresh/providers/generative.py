from __future__ import annotations

import json
import logging
from typing import Any

from care_refresh.clients.llm import ChatCompletionClient
from care_refresh.core.exceptions import GenerationParseError
from care_refresh.core.models import DataKind, SourceRecord
from care_refresh.providers.base import BaseSourceAdapter

logger = logging.getLogger(__name__)

FACILITY_SYSTEM_PROMPT = (
    "You are a JSON generator for healthcare facility data. Return only valid JSON arrays with realistic, "
    "diverse facility information. Use real addresses and locations. No additional text or comments."
)

FACILITY_PROMPT_TEMPLATE = """Generate a detailed JSON array of {count} women's health facilities in {region} with realistic information. Include major cities and suburban areas. Each facility should have:

1. Real addresses in {region} (use actual street names and cities)
2. Realistic phone numbers with correct area codes for {region}
3. Diverse types of facilities:
   - Women's Health Centers
   - OB/GYN Clinics
   - Family Planning Centers
   - Reproductive Health Clinics
   - Community Health Centers

Each facility should follow this exact format:
{{
  "name": "Facility Name",
  "facilityType": "Type",
  "address": "Full street address",
  "city": "City name",
  "state": "{region}",
  "zipCode": "ZIP code",
  "phone": "Phone number",
  "website": "Website URL",
  "services": ["List of services"],
  "acceptsInsurance": true/false,
  "isVerified": true/false,
  "operatingHours": {{
    "monday": "Hours",
    "tuesday": "Hours",
    "wednesday": "Hours",
    "thursday": "Hours",
    "friday": "Hours",
    "saturday": "Hours",
    "sunday": "Hours"
  }},
  "languages": ["Languages offered"],
  "acceptedInsuranceProviders": ["Insurance providers"],
  "amenities": ["Available amenities"],
  "waitTime": "Typical wait time",
  "emergencyServices": true/false,
  "telehealth": true/false,
  "financialAssistance": ["Financial assistance options"]
}}"""

NEWS_SYSTEM_PROMPT = (
    "You are a reproductive healthcare policy expert focused on providing accurate, up-to-date information "
    "about healthcare access and policies."
)

NEWS_PROMPT_TEMPLATE = """As a reproductive healthcare policy expert, analyze and summarize the most recent reproductive healthcare news, laws, and policy updates for {region} state. Format your response as JSON with the following structure for each update:
{{
  "updates": [
    {{
      "title": "Brief, informative title",
      "content": "Detailed summary of the update (2-3 sentences)",
      "sourceUrl": "URL of a reliable source covering this update",
      "sourceName": "Name of the source organization",
      "category": "One of: Policy, Access, Legal, Healthcare, Education",
      "publishedAt": "YYYY-MM-DD format date"
    }}
  ]
}}

Focus on factual, verified information from reliable sources like state health departments, major news outlets, and healthcare organizations. Include relative source URLs."""


def parse_json_collection(text: str, container_key: str) -> list[dict[str, Any]]:
    """Parse generated text into a list of objects.

    A bare array is returned as is. An object carrying ``container_key`` is
    unwrapped; any other object becomes a one-element list. Anything that is
    still not an array of objects raises ``GenerationParseError``.
    """
    try:
        parsed = json.loads(text.strip())
    except ValueError as exc:
        raise GenerationParseError(f"Invalid JSON response: {exc}") from exc
    if isinstance(parsed, dict):
        parsed = parsed[container_key] if container_key in parsed else [parsed]
    if not isinstance(parsed, list):
        raise GenerationParseError("Invalid JSON response: Response is not an array")
    items = [item for item in parsed if isinstance(item, dict)]
    if len(items) != len(parsed):
        logger.warning(
            "generated_items_skipped",
            extra={"container_key": container_key, "skipped": len(parsed) - len(items)},
        )
    return items


class GenerativeFacilityAdapter(BaseSourceAdapter):
    source_name = "generative_facilities"
    kind = DataKind.FACILITIES

    def __init__(self, client: ChatCompletionClient, facility_count: int = 40) -> None:
        self._client = client
        self._facility_count = facility_count

    async def fetch_records(self, region: str) -> list[SourceRecord]:
        logger.info("generation_requested", extra={"source": self.source_name, "region": region})
        text = await self._client.complete_json(
            system=FACILITY_SYSTEM_PROMPT,
            messages=[
                {
                    "role": "user",
                    "content": FACILITY_PROMPT_TEMPLATE.format(count=self._facility_count, region=region),
                }
            ],
            temperature=0.7,
            max_tokens=4096,
        )
        items = parse_json_collection(text, container_key="facilities")
        logger.info(
            "generation_parsed",
            extra={"source": self.source_name, "region": region, "record_count": len(items)},
        )
        return [self.build_record(region, item) for item in items]


class GenerativeNewsAdapter(BaseSourceAdapter):
    source_name = "generative_news"
    kind = DataKind.NEWS

    def __init__(self, client: ChatCompletionClient) -> None:
        self._client = client

    async def fetch_records(self, region: str) -> list[SourceRecord]:
        text = await self._client.complete_json(
            system=NEWS_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": NEWS_PROMPT_TEMPLATE.format(region=region)}],
            temperature=0.5,
            max_tokens=2048,
        )
        items = parse_json_collection(text, container_key="updates")
        logger.info(
            "source_fetch_completed",
            extra={"source": self.source_name, "region": region, "record_count": len(items)},
        )
        return [self.build_record(region, item) for item in items]
