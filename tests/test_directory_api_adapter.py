from __future__ import annotations

import httpx
import pytest

from care_refresh.core.exceptions import ProviderNormalizationError
from care_refresh.providers.directory_api import DirectoryApiFacilityAdapter, parse_centers


def test_parse_centers_maps_fields() -> None:
    centers = parse_centers(
        {
            "centers": [
                {
                    "name": "Near North Health",
                    "address": "1276 N Clybourn Ave",
                    "city": "Chicago",
                    "state": "IL",
                    "zip": "60610",
                    "phone": "(312) 337-1073",
                    "latitude": 41.905,
                    "longitude": -87.64,
                }
            ]
        }
    )

    assert centers[0]["zipCode"] == "60610"
    assert centers[0]["type"] == "Health Center"
    assert centers[0]["latitude"] == 41.905
    assert centers[0]["operatingHours"]["sunday"] == "Closed"
    assert "Family Planning" in centers[0]["services"]


@pytest.mark.parametrize("payload", [[], {"data": []}, {"centers": "none"}, {"centers": ["x"]}])
def test_parse_centers_rejects_malformed_payload(payload) -> None:
    with pytest.raises(ProviderNormalizationError):
        parse_centers(payload)


@pytest.mark.asyncio
async def test_adapter_builds_records_from_api(mock_fetcher) -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"centers": [{"name": "A", "address": "1 Main"}, {"name": "B"}]})

    adapter = DirectoryApiFacilityAdapter(mock_fetcher(handler))
    records = await adapter.fetch_records("IL")

    assert seen == ["https://findahealthcenter.hrsa.gov/widget/api/state=IL"]
    assert [record.payload["name"] for record in records] == ["A", "B"]
    assert records[0].source == "hrsa_directory_api"


@pytest.mark.asyncio
async def test_adapter_rejects_non_json_body(mock_fetcher) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    adapter = DirectoryApiFacilityAdapter(mock_fetcher(handler))

    with pytest.raises(ProviderNormalizationError):
        await adapter.fetch_records("IN")
