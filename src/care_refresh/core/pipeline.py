from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from time import perf_counter
from typing import Any, TypeVar

from opentelemetry import trace

from care_refresh.core.exceptions import PipelineError, ValidationError
from care_refresh.core.metrics import InMemoryPipelineMetricsCollector
from care_refresh.core.models import CanonicalRecord, DataKind, Facility
from care_refresh.core.normalizer import drop_stale_news, normalize_batch
from care_refresh.geo.geocoder import Geocoder
from care_refresh.providers.chain import PrioritizedSourceChain

R = TypeVar("R")
logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

NEWS_RECENCY_DAYS = 30


class DatasetStore(ABC):
    """Per-region replacement of facility, law and news rows.

    ``replace`` runs as one transaction: existing rows for the region and
    kind are deleted and the batch inserted, or nothing changes. For news
    only rows older than the recency window are deleted.
    """

    def __init__(self, news_recency_days: int = NEWS_RECENCY_DAYS) -> None:
        if news_recency_days <= 0:
            raise ValueError("news_recency_days must be > 0")
        self.news_recency_days = news_recency_days

    @abstractmethod
    async def replace(
        self,
        region: str,
        kind: DataKind,
        records: Sequence[CanonicalRecord],
        now: datetime | None = None,
    ) -> int:
        raise NotImplementedError

    @abstractmethod
    async def list_records(self, region: str, kind: DataKind) -> list[CanonicalRecord]:
        raise NotImplementedError

    def news_cutoff(self, now: datetime | None = None) -> datetime:
        return (now or datetime.now(timezone.utc)) - timedelta(days=self.news_recency_days)

    def check_batch(self, kind: DataKind, records: Sequence[CanonicalRecord]) -> None:
        if kind is not DataKind.FACILITIES:
            return
        missing = [record.name for record in records if isinstance(record, Facility) and not record.has_coordinates]
        if missing:
            raise ValidationError(f"facilities without coordinates: {', '.join(missing[:5])}")


@dataclass(frozen=True)
class KindOutcome:
    region: str
    kind: DataKind
    status: str
    saved_count: int = 0
    dropped_count: int = 0
    used_fallback: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "region": self.region,
            "kind": self.kind.value,
            "status": self.status,
            "saved_count": self.saved_count,
            "dropped_count": self.dropped_count,
            "used_fallback": self.used_fallback,
            "error": self.error,
        }


@dataclass
class RefreshRunReport:
    started_at: datetime
    finished_at: datetime | None = None
    outcomes: list[KindOutcome] = field(default_factory=list)

    @property
    def status(self) -> str:
        if any(outcome.status == "failed" for outcome in self.outcomes):
            return "partial"
        return "success"

    def outcome(self, region: str, kind: DataKind) -> KindOutcome | None:
        for item in self.outcomes:
            if item.region == region and item.kind is kind:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


class RefreshOrchestrator:
    """Sequential fetch, normalize, geocode and persist over every region.

    Each (region, kind) pair is an independent unit: a failure is logged and
    recorded in the report, and the run moves on to the next unit.
    """

    def __init__(
        self,
        facility_source: PrioritizedSourceChain,
        law_source: PrioritizedSourceChain,
        news_source: PrioritizedSourceChain,
        geocoder: Geocoder,
        store: DatasetStore,
        regions: Sequence[str] = ("IN", "IL"),
        kind_delay_seconds: float = 5.0,
        region_delay_seconds: float = 10.0,
        metrics: InMemoryPipelineMetricsCollector | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._sources = {
            DataKind.FACILITIES: facility_source,
            DataKind.LAWS: law_source,
            DataKind.NEWS: news_source,
        }
        self._geocoder = geocoder
        self._store = store
        self._regions = tuple(regions)
        self._kind_delay_seconds = kind_delay_seconds
        self._region_delay_seconds = region_delay_seconds
        self._metrics = metrics
        self._sleep = sleep
        self._clock = clock

    @property
    def regions(self) -> tuple[str, ...]:
        return self._regions

    async def run_once(self) -> RefreshRunReport:
        report = RefreshRunReport(started_at=self._clock())
        logger.info("refresh_run_started", extra={"regions": list(self._regions)})
        for index, region in enumerate(self._regions):
            report.outcomes.extend(await self.refresh_region(region))
            if index < len(self._regions) - 1:
                await self._sleep(self._region_delay_seconds)
        report.finished_at = self._clock()
        if self._metrics:
            self._metrics.increment_run(report.status)
        logger.info(
            "refresh_run_completed",
            extra={"status": report.status, "duration_seconds": (report.finished_at - report.started_at).total_seconds()},
        )
        return report

    async def refresh_region(self, region: str) -> list[KindOutcome]:
        started = perf_counter()
        with tracer.start_as_current_span("refresh_region", attributes={"region": region}):
            outcomes = [await self.refresh_kind(region, DataKind.FACILITIES)]
            await self._sleep(self._kind_delay_seconds)
            outcomes.append(await self.refresh_kind(region, DataKind.LAWS))
            outcomes.append(await self.refresh_kind(region, DataKind.NEWS))
        if self._metrics:
            self._metrics.observe_refresh_duration(region, perf_counter() - started)
        return outcomes

    async def refresh_kind(self, region: str, kind: DataKind) -> KindOutcome:
        logger.info("refresh_kind_started", extra={"region": region, "kind": kind.value})
        try:
            outcome = await self._refresh_kind(region, kind)
        except PipelineError as exc:
            logger.error(
                "refresh_kind_failed",
                extra={"region": region, "kind": kind.value, "error": str(exc)},
            )
            outcome = KindOutcome(region=region, kind=kind, status="failed", error=str(exc))
        except Exception as exc:
            logger.exception("refresh_kind_crashed", extra={"region": region, "kind": kind.value})
            outcome = KindOutcome(region=region, kind=kind, status="failed", error=f"{type(exc).__name__}: {exc}")
        if self._metrics:
            self._metrics.increment_kind(region, kind.value, outcome.status)
            self._metrics.add_records(region, kind.value, "saved", outcome.saved_count)
            self._metrics.add_records(region, kind.value, "dropped", outcome.dropped_count)
        logger.info(
            "refresh_kind_completed",
            extra={
                "region": region,
                "kind": kind.value,
                "status": outcome.status,
                "saved_count": outcome.saved_count,
                "used_fallback": outcome.used_fallback,
            },
        )
        return outcome

    async def _refresh_kind(self, region: str, kind: DataKind) -> KindOutcome:
        collected = await self._time_async(f"fetch_{kind.value}", lambda: self._sources[kind].collect(region))
        used_fallback = collected.used_fallback
        batch, dropped = self._time_sync(f"normalize_{kind.value}", lambda: normalize_batch(collected.records, kind))
        now = self._clock()
        if kind is DataKind.FACILITIES:
            batch = await self._time_async("geocode_facilities", lambda: self.geocode_missing(batch))
        elif kind is DataKind.NEWS:
            fresh = drop_stale_news(batch, self._store.news_cutoff(now))
            dropped += len(batch) - len(fresh)
            batch = fresh

        if not batch:
            # Nothing usable: the previously stored batch stays authoritative.
            return KindOutcome(region=region, kind=kind, status="empty", dropped_count=dropped, used_fallback=used_fallback)

        saved = await self._time_async(
            f"persist_{kind.value}", lambda: self._store.replace(region, kind, batch, now=now)
        )
        return KindOutcome(
            region=region,
            kind=kind,
            status="success",
            saved_count=saved,
            dropped_count=dropped,
            used_fallback=used_fallback,
        )

    async def geocode_missing(self, facilities: Sequence[Facility]) -> list[Facility]:
        enriched: list[Facility] = []
        for facility in facilities:
            if facility.has_coordinates:
                enriched.append(facility)
                continue
            enriched.append(await self._geocoder.enrich_facility(facility))
        return enriched

    async def _time_async(self, stage: str, action: Callable[[], Awaitable[R]]) -> R:
        started = perf_counter()
        result = await action()
        self._observe(stage, (perf_counter() - started) * 1000.0)
        return result

    def _time_sync(self, stage: str, action: Callable[[], R]) -> R:
        started = perf_counter()
        result = action()
        self._observe(stage, (perf_counter() - started) * 1000.0)
        return result

    def _observe(self, stage: str, duration_ms: float) -> None:
        if self._metrics:
            self._metrics.observe_stage_duration(stage, duration_ms)
