from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from care_refresh.core.models import DataKind, Facility, Law, NewsUpdate, SourceRecord

DEFAULT_RELEVANCE_SCORE = Decimal("1.0")


def _pick(item: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in item and item[key] is not None:
            return item[key]
    return None


def _to_str(value: Any, default: str = "") -> str:
    if value is None or isinstance(value, (dict, list)):
        return default
    return " ".join(str(value).split())


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    if isinstance(value, (int, float)):
        return value == 1
    return False


def _to_str_list(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [text for text in (_to_str(item) for item in value) if text]


def _to_hours(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(day).strip().lower(): _to_str(hours) for day, hours in value.items() if _to_str(hours)}


def _to_coordinate(value: Any, limit: int) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not parsed.is_finite() or abs(parsed) > limit:
        return None
    return parsed


def _to_datetime(value: Any, default: datetime | None) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return default
    else:
        return default
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_score(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return DEFAULT_RELEVANCE_SCORE
    try:
        score = float(value)
    except (TypeError, ValueError):
        return DEFAULT_RELEVANCE_SCORE
    if not math.isfinite(score):
        return DEFAULT_RELEVANCE_SCORE
    return Decimal(str(score))


def normalize_facility(record: SourceRecord) -> Facility | None:
    item = record.payload
    name = _to_str(_pick(item, "name", "facility_name"))
    address = _to_str(_pick(item, "address", "street", "street_address"))
    if not name or not address:
        return None
    latitude = _to_coordinate(_pick(item, "latitude", "lat"), limit=90)
    longitude = _to_coordinate(_pick(item, "longitude", "lon", "lng"), limit=180)
    # Missing or placeholder coordinates are left for the geocoder.
    if latitude is None or longitude is None or (latitude == 0 and longitude == 0):
        latitude = longitude = None
    return Facility(
        name=name,
        type=_to_str(_pick(item, "type", "category", "facilityType", "facility_type")),
        facility_type=_to_str(_pick(item, "facilityType", "facility_type")),
        address=address,
        city=_to_str(_pick(item, "city")),
        region=record.region,
        zip_code=_to_str(_pick(item, "zipCode", "zip_code", "zip")),
        phone=_to_str(_pick(item, "phone")),
        website=_to_str(_pick(item, "website", "url")),
        latitude=latitude,
        longitude=longitude,
        wait_time=_to_str(_pick(item, "waitTime", "wait_time")),
        accepts_insurance=_to_bool(_pick(item, "acceptsInsurance", "accepts_insurance")),
        is_verified=_to_bool(_pick(item, "isVerified", "is_verified")),
        emergency_services=_to_bool(_pick(item, "emergencyServices", "emergency_services")),
        telehealth=_to_bool(_pick(item, "telehealth")),
        services=_to_str_list(_pick(item, "services")),
        languages=_to_str_list(_pick(item, "languages")),
        operating_hours=_to_hours(_pick(item, "operatingHours", "operating_hours", "hours")),
        accepted_insurance_providers=_to_str_list(
            _pick(item, "acceptedInsuranceProviders", "accepted_insurance_providers")
        ),
        amenities=_to_str_list(_pick(item, "amenities")),
        financial_assistance=_to_str_list(_pick(item, "financialAssistance", "financial_assistance")),
    )


def normalize_law(record: SourceRecord) -> Law | None:
    item = record.payload
    region = (_to_str(_pick(item, "state", "region")) or record.region).upper()
    category = _to_str(_pick(item, "category"))
    title = _to_str(_pick(item, "title"))
    content = _to_str(_pick(item, "content", "body"))
    if not region or not category or not title or not content:
        return None
    return Law(
        region=region,
        category=category,
        title=title,
        content=content,
        source=_to_str(_pick(item, "source", "citation")),
        effective_date=_to_datetime(_pick(item, "effectiveDate", "effective_date"), default=None),
        last_updated=record.fetched_at,
    )


def normalize_news(record: SourceRecord) -> NewsUpdate | None:
    item = record.payload
    title = _to_str(_pick(item, "title"))
    content = _to_str(_pick(item, "content", "summary", "body"))
    if not title or not content:
        return None
    region = (_to_str(_pick(item, "state", "region")) or record.region).upper() or None
    published_at = _to_datetime(_pick(item, "publishedAt", "published_at"), default=record.fetched_at)
    return NewsUpdate(
        title=title,
        content=content,
        source_url=_to_str(_pick(item, "sourceUrl", "source_url", "url")),
        source_name=_to_str(_pick(item, "sourceName", "source_name")),
        region=region,
        category=_to_str(_pick(item, "category")),
        published_at=published_at or record.fetched_at,
        created_at=record.fetched_at,
        relevance_score=_to_score(_pick(item, "relevanceScore", "relevance_score")),
    )


_NORMALIZERS: dict[DataKind, Callable[[SourceRecord], Any]] = {
    DataKind.FACILITIES: normalize_facility,
    DataKind.LAWS: normalize_law,
    DataKind.NEWS: normalize_news,
}


def normalize_batch(records: Iterable[SourceRecord], kind: DataKind) -> tuple[list[Any], int]:
    """Normalize ``records`` as ``kind``; returns the accepted batch and the dropped count."""
    normalizer = _NORMALIZERS[kind]
    accepted: list[Any] = []
    dropped = 0
    for record in records:
        normalized = normalizer(record)
        if normalized is None:
            dropped += 1
            continue
        accepted.append(normalized)
    return accepted, dropped


def drop_stale_news(items: Sequence[NewsUpdate], cutoff: datetime) -> list[NewsUpdate]:
    return [item for item in items if item.published_at >= cutoff]
