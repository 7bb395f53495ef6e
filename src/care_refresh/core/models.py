from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Union


class DataKind(str, Enum):
    FACILITIES = "facilities"
    LAWS = "laws"
    NEWS = "news"


@dataclass(frozen=True)
class SourceRecord:
    trace_id: str
    source: str
    kind: DataKind
    region: str
    payload: dict[str, Any]
    fetched_at: datetime


@dataclass(frozen=True)
class GeoPoint:
    lat: Decimal
    lon: Decimal


@dataclass(frozen=True)
class Facility:
    name: str
    type: str
    address: str
    city: str
    region: str
    zip_code: str
    phone: str
    website: str
    latitude: Decimal | None = None
    longitude: Decimal | None = None
    facility_type: str = ""
    wait_time: str = ""
    accepts_insurance: bool = False
    is_verified: bool = False
    emergency_services: bool = False
    telehealth: bool = False
    services: list[str] = field(default_factory=list)
    languages: list[str] = field(default_factory=list)
    operating_hours: dict[str, str] = field(default_factory=dict)
    accepted_insurance_providers: list[str] = field(default_factory=list)
    amenities: list[str] = field(default_factory=list)
    financial_assistance: list[str] = field(default_factory=list)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True)
class Law:
    region: str
    category: str
    title: str
    content: str
    source: str
    effective_date: datetime | None
    last_updated: datetime


@dataclass(frozen=True)
class NewsUpdate:
    title: str
    content: str
    source_url: str
    source_name: str
    region: str | None
    category: str
    published_at: datetime
    created_at: datetime
    relevance_score: Decimal


CanonicalRecord = Union[Facility, Law, NewsUpdate]
