from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable

from care_refresh.core.exceptions import PersistenceError, PipelineError, ValidationError
from care_refresh.core.models import CanonicalRecord, DataKind, Facility, Law, NewsUpdate
from care_refresh.core.pipeline import NEWS_RECENCY_DAYS, DatasetStore

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS facilities (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL,
    address TEXT NOT NULL,
    city TEXT NOT NULL,
    state TEXT NOT NULL,
    zip_code TEXT NOT NULL,
    latitude NUMERIC NOT NULL,
    longitude NUMERIC NOT NULL,
    type TEXT NOT NULL,
    phone TEXT NOT NULL,
    website TEXT,
    accepts_insurance BOOLEAN DEFAULT FALSE,
    is_verified BOOLEAN DEFAULT FALSE,
    services JSONB NOT NULL,
    operating_hours JSONB NOT NULL,
    accepted_insurance_providers JSONB,
    languages JSONB,
    amenities JSONB,
    facility_type TEXT,
    wait_time TEXT,
    emergency_services BOOLEAN DEFAULT FALSE,
    telehealth BOOLEAN DEFAULT FALSE,
    financial_assistance JSONB,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS facilities_state_idx ON facilities (state);

CREATE TABLE IF NOT EXISTS laws (
    id SERIAL PRIMARY KEY,
    state TEXT NOT NULL,
    category TEXT NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    source TEXT NOT NULL,
    effective_date TIMESTAMPTZ,
    last_updated TIMESTAMPTZ DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS laws_state_idx ON laws (state);

CREATE TABLE IF NOT EXISTS news_updates (
    id SERIAL PRIMARY KEY,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    source_url TEXT NOT NULL,
    source_name TEXT NOT NULL,
    state TEXT,
    category TEXT NOT NULL,
    published_at TIMESTAMPTZ NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    relevance_score NUMERIC NOT NULL
);
CREATE INDEX IF NOT EXISTS news_updates_state_published_idx ON news_updates (state, published_at);
"""

_RECORD_TYPES: dict[DataKind, type] = {
    DataKind.FACILITIES: Facility,
    DataKind.LAWS: Law,
    DataKind.NEWS: NewsUpdate,
}

LOCK_SQL = "SELECT pg_advisory_xact_lock(hashtext($1))"

DELETE_SQL: dict[DataKind, str] = {
    DataKind.FACILITIES: "DELETE FROM facilities WHERE state = $1",
    DataKind.LAWS: "DELETE FROM laws WHERE state = $1",
    DataKind.NEWS: "DELETE FROM news_updates WHERE state = $1 AND published_at < $2",
}

INSERT_SQL: dict[DataKind, str] = {
    DataKind.FACILITIES: """
INSERT INTO facilities (
    name, type, facility_type, address, city, state, zip_code, phone, website,
    latitude, longitude, wait_time, accepts_insurance, is_verified, emergency_services, telehealth,
    services, languages, operating_hours, accepted_insurance_providers, amenities, financial_assistance
) VALUES (
    $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16,
    $17::jsonb, $18::jsonb, $19::jsonb, $20::jsonb, $21::jsonb, $22::jsonb
)
""",
    DataKind.LAWS: """
INSERT INTO laws (state, category, title, content, source, effective_date, last_updated)
VALUES ($1, $2, $3, $4, $5, $6, $7)
""",
    DataKind.NEWS: """
INSERT INTO news_updates (
    title, content, source_url, source_name, state, category, published_at, created_at, relevance_score
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
""",
}

SELECT_SQL: dict[DataKind, str] = {
    DataKind.FACILITIES: """
SELECT name, type, facility_type, address, city, state, zip_code, phone, website,
    latitude, longitude, wait_time, accepts_insurance, is_verified, emergency_services, telehealth,
    services, languages, operating_hours, accepted_insurance_providers, amenities, financial_assistance
FROM facilities WHERE state = $1 ORDER BY id
""",
    DataKind.LAWS: """
SELECT state, category, title, content, source, effective_date, last_updated
FROM laws WHERE state = $1 ORDER BY id
""",
    DataKind.NEWS: """
SELECT title, content, source_url, source_name, state, category, published_at, created_at, relevance_score
FROM news_updates WHERE state = $1 ORDER BY published_at DESC
""",
}


def _json_list(value: Any) -> list[str]:
    if isinstance(value, str):
        value = json.loads(value)
    return list(value or [])


def _json_dict(value: Any) -> dict[str, str]:
    if isinstance(value, str):
        value = json.loads(value)
    return dict(value or {})


class PostgresDatasetStore(DatasetStore):
    def __init__(
        self,
        dsn: str,
        news_recency_days: int = NEWS_RECENCY_DAYS,
        pool_factory: Callable[[str], Awaitable[Any]] | None = None,
    ) -> None:
        super().__init__(news_recency_days=news_recency_days)
        self._dsn = dsn
        self._pool = None
        self._pool_factory = pool_factory

    async def ensure_schema(self) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def replace(
        self,
        region: str,
        kind: DataKind,
        records: Sequence[CanonicalRecord],
        now: datetime | None = None,
    ) -> int:
        self.check_batch(kind, records)
        rows = [self._to_row(region, kind, record) for record in records]
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    # Serializes periodic and on-demand writers of the same unit.
                    await conn.execute(LOCK_SQL, f"{kind.value}:{region}")
                    if kind is DataKind.NEWS:
                        await conn.execute(DELETE_SQL[kind], region, self.news_cutoff(now))
                    else:
                        await conn.execute(DELETE_SQL[kind], region)
                    if rows:
                        await conn.executemany(INSERT_SQL[kind], rows)
        except PipelineError:
            raise
        except Exception as exc:
            raise PersistenceError(
                f"postgres replace failed: region={region}, kind={kind.value}, error={type(exc).__name__}"
            ) from exc
        logger.info(
            "dataset_replaced",
            extra={"backend": "postgres", "region": region, "kind": kind.value, "saved_count": len(rows)},
        )
        return len(rows)

    async def list_records(self, region: str, kind: DataKind) -> list[CanonicalRecord]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(SELECT_SQL[kind], region)
        return [self._from_row(kind, row) for row in rows]

    async def _get_pool(self) -> Any:
        if self._pool is not None:
            return self._pool
        self._pool = await self._create_pool()
        return self._pool

    async def _create_pool(self) -> Any:
        if self._pool_factory:
            return await self._pool_factory(self._dsn)
        import asyncpg

        return await asyncpg.create_pool(dsn=self._dsn, min_size=1, max_size=5)

    def _to_row(self, region: str, kind: DataKind, record: CanonicalRecord) -> tuple:
        if not isinstance(record, _RECORD_TYPES[kind]):
            raise ValidationError(f"expected {_RECORD_TYPES[kind].__name__} for {kind.value}, got {type(record).__name__}")
        if isinstance(record, Facility):
            return (
                record.name,
                record.type,
                record.facility_type,
                record.address,
                record.city,
                region,
                record.zip_code,
                record.phone,
                record.website,
                record.latitude,
                record.longitude,
                record.wait_time,
                record.accepts_insurance,
                record.is_verified,
                record.emergency_services,
                record.telehealth,
                json.dumps(record.services),
                json.dumps(record.languages),
                json.dumps(record.operating_hours),
                json.dumps(record.accepted_insurance_providers),
                json.dumps(record.amenities),
                json.dumps(record.financial_assistance),
            )
        if isinstance(record, Law):
            return (
                region,
                record.category,
                record.title,
                record.content,
                record.source,
                record.effective_date,
                record.last_updated,
            )
        return (
            record.title,
            record.content,
            record.source_url,
            record.source_name,
            region,
            record.category,
            record.published_at,
            record.created_at,
            record.relevance_score,
        )

    def _from_row(self, kind: DataKind, row: Any) -> CanonicalRecord:
        if kind is DataKind.FACILITIES:
            return Facility(
                name=row["name"],
                type=row["type"],
                facility_type=row["facility_type"] or "",
                address=row["address"],
                city=row["city"],
                region=row["state"],
                zip_code=row["zip_code"],
                phone=row["phone"],
                website=row["website"] or "",
                latitude=Decimal(str(row["latitude"])),
                longitude=Decimal(str(row["longitude"])),
                wait_time=row["wait_time"] or "",
                accepts_insurance=bool(row["accepts_insurance"]),
                is_verified=bool(row["is_verified"]),
                emergency_services=bool(row["emergency_services"]),
                telehealth=bool(row["telehealth"]),
                services=_json_list(row["services"]),
                languages=_json_list(row["languages"]),
                operating_hours=_json_dict(row["operating_hours"]),
                accepted_insurance_providers=_json_list(row["accepted_insurance_providers"]),
                amenities=_json_list(row["amenities"]),
                financial_assistance=_json_list(row["financial_assistance"]),
            )
        if kind is DataKind.LAWS:
            return Law(
                region=row["state"],
                category=row["category"],
                title=row["title"],
                content=row["content"],
                source=row["source"],
                effective_date=row["effective_date"],
                last_updated=row["last_updated"],
            )
        return NewsUpdate(
            title=row["title"],
            content=row["content"],
            source_url=row["source_url"],
            source_name=row["source_name"],
            region=row["state"],
            category=row["category"],
            published_at=row["published_at"],
            created_at=row["created_at"],
            relevance_score=Decimal(str(row["relevance_score"])),
        )
