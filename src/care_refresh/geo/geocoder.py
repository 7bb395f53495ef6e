from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from care_refresh.clients.fetcher import FetchFailure, RateLimitedFetcher
from care_refresh.core.metrics import InMemoryPipelineMetricsCollector
from care_refresh.core.models import Facility, GeoPoint

logger = logging.getLogger(__name__)

# State capitals, used when an address cannot be resolved.
REGION_CENTROIDS: Mapping[str, GeoPoint] = {
    "IN": GeoPoint(lat=Decimal("39.7684"), lon=Decimal("-86.1581")),
    "IL": GeoPoint(lat=Decimal("39.7817"), lon=Decimal("-89.6501")),
    "MI": GeoPoint(lat=Decimal("42.7325"), lon=Decimal("-84.5555")),
    "OH": GeoPoint(lat=Decimal("39.9612"), lon=Decimal("-82.9988")),
    "KY": GeoPoint(lat=Decimal("38.1867"), lon=Decimal("-84.8753")),
    "WI": GeoPoint(lat=Decimal("43.0731"), lon=Decimal("-89.4012")),
}

ZERO_POINT = GeoPoint(lat=Decimal("0"), lon=Decimal("0"))


def cache_key(address: str, city: str, region: str) -> str:
    return f"{address}, {city}, {region}"


class GeocodeCache:
    """Process-lifetime address cache; entries are never invalidated."""

    def __init__(self) -> None:
        self._entries: dict[str, GeoPoint] = {}

    def get(self, key: str) -> GeoPoint | None:
        return self._entries.get(key)

    def put(self, key: str, point: GeoPoint) -> None:
        self._entries[key] = point

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class Geocoder:
    """Resolve postal addresses to coordinates.

    Lookups go through the cache first. A lookup that returns zero matches is
    retried up to ``max_retries`` times with exponential spacing; this is
    separate from the fetcher's own transport retries. When nothing resolves
    the region centroid is returned, or ``ZERO_POINT`` for unknown regions.
    """

    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        cache: GeocodeCache,
        endpoint: str = "https://nominatim.openstreetmap.org/search",
        max_retries: int = 3,
        base_delay_seconds: float = 1.0,
        centroids: Mapping[str, GeoPoint] = REGION_CENTROIDS,
        metrics: InMemoryPipelineMetricsCollector | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._fetcher = fetcher
        self._cache = cache
        self._endpoint = endpoint
        self._max_retries = max_retries
        self._base_delay_seconds = base_delay_seconds
        self._centroids = centroids
        self._metrics = metrics
        self._sleep = sleep

    async def resolve(self, address: str, city: str, region: str) -> GeoPoint:
        key = cache_key(address, city, region)
        cached = self._cache.get(key)
        if cached is not None:
            self._count("cache_hit")
            return cached

        for attempt in range(self._max_retries + 1):
            if attempt:
                await self._sleep(self._base_delay_seconds * (2**attempt))
            outcome = await self._fetcher.fetch(self._endpoint, params={"format": "json", "q": key, "limit": 1})
            if isinstance(outcome, FetchFailure):
                logger.warning("geocode_transport_failed", extra={"query": key, "reason": outcome.reason})
                break
            point = self._first_match(outcome.json_or_none())
            if point is not None:
                self._cache.put(key, point)
                self._count("resolved")
                return point
            if attempt < self._max_retries:
                logger.info(
                    "geocode_no_results_retrying",
                    extra={"query": key, "attempt": attempt + 1, "max_retries": self._max_retries},
                )

        self._count("fallback")
        fallback = self._centroids.get(region.upper(), ZERO_POINT)
        logger.warning("geocode_fallback_used", extra={"query": key, "region": region, "lat": str(fallback.lat)})
        return fallback

    async def enrich_facility(self, facility: Facility) -> Facility:
        point = await self.resolve(facility.address, facility.city, facility.region)
        return dataclasses.replace(facility, latitude=point.lat, longitude=point.lon)

    def _first_match(self, payload: Any) -> GeoPoint | None:
        if not isinstance(payload, list) or not payload:
            return None
        first = payload[0]
        if not isinstance(first, dict):
            return None
        try:
            lat, lon = Decimal(str(first["lat"])), Decimal(str(first["lon"]))
        except (KeyError, InvalidOperation):
            return None
        if not (lat.is_finite() and lon.is_finite()) or abs(lat) > 90 or abs(lon) > 180:
            return None
        return GeoPoint(lat=lat, lon=lon)

    def _count(self, result: str) -> None:
        if self._metrics:
            self._metrics.increment_geocode(result)
