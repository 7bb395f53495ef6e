from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from dataclasses import dataclass

import uvicorn

from care_refresh.clients.fetcher import RateLimitedFetcher
from care_refresh.clients.llm import ChatCompletionClient
from care_refresh.config import RefreshSettings, load_settings
from care_refresh.core.exceptions import ConfigurationError
from care_refresh.core.metrics import InMemoryPipelineMetricsCollector
from care_refresh.core.pipeline import DatasetStore, RefreshOrchestrator
from care_refresh.geo.geocoder import GeocodeCache, Geocoder
from care_refresh.jobs.generation import FacilityGenerationService, build_error_payload
from care_refresh.jobs.postgres_store import PostgresDatasetStore
from care_refresh.jobs.scheduler import RefreshScheduler
from care_refresh.jobs.store import JsonlDatasetStore
from care_refresh.monitoring.app import create_monitoring_app
from care_refresh.monitoring.state import pipeline_metrics, pipeline_status
from care_refresh.observability import configure_logging, configure_otel
from care_refresh.providers import (
    CuratedLawAdapter,
    GenerativeFacilityAdapter,
    GenerativeNewsAdapter,
    PrioritizedSourceChain,
    build_facility_chain,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefreshRuntime:
    store: DatasetStore
    geocoder: Geocoder
    orchestrator: RefreshOrchestrator
    generation: FacilityGenerationService


def _build_store(settings: RefreshSettings) -> DatasetStore:
    backend = settings.PIPELINE_STORE_BACKEND.lower()
    if backend == "postgres":
        if not settings.DATABASE_URL:
            raise ConfigurationError("missing required environment variable: DATABASE_URL")
        return PostgresDatasetStore(dsn=settings.DATABASE_URL, news_recency_days=settings.NEWS_RECENCY_DAYS)
    if backend == "jsonl":
        return JsonlDatasetStore(output_dir=settings.PIPELINE_OUTPUT_DIR, news_recency_days=settings.NEWS_RECENCY_DAYS)
    raise ConfigurationError(f"unsupported PIPELINE_STORE_BACKEND '{backend}', supported: jsonl, postgres")


def _build_fetcher(
    settings: RefreshSettings,
    source_name: str,
    metrics: InMemoryPipelineMetricsCollector,
    user_agents: Sequence[str] | None = None,
) -> RateLimitedFetcher:
    options = {} if user_agents is None else {"user_agents": user_agents}
    return RateLimitedFetcher(
        base_delay_seconds=settings.FETCH_BASE_DELAY_SECONDS,
        retry_delay_seconds=settings.FETCH_RETRY_DELAY_SECONDS,
        max_retries=settings.FETCH_MAX_RETRIES,
        timeout_seconds=settings.FETCH_TIMEOUT_SECONDS,
        max_redirects=settings.FETCH_MAX_REDIRECTS,
        source_name=source_name,
        metrics=metrics,
        **options,
    )


def build_runtime(
    settings: RefreshSettings,
    metrics: InMemoryPipelineMetricsCollector = pipeline_metrics,
    store: DatasetStore | None = None,
) -> RefreshRuntime:
    store = store or _build_store(settings)
    geocoder = Geocoder(
        fetcher=_build_fetcher(settings, "geocoder", metrics, user_agents=(settings.GEOCODER_USER_AGENT,)),
        cache=GeocodeCache(),
        endpoint=settings.GEOCODER_URL,
        max_retries=settings.GEOCODER_MAX_RETRIES,
        base_delay_seconds=settings.GEOCODER_BASE_DELAY_SECONDS,
        metrics=metrics,
    )
    # The key is checked when a generative call is made, not at startup.
    chat_client = ChatCompletionClient(
        base_url=settings.GENERATIVE_BASE_URL,
        api_key=settings.GROQ_API_KEY,
        model=settings.GENERATIVE_MODEL,
        timeout_seconds=settings.GENERATIVE_TIMEOUT_SECONDS,
        metrics=metrics,
    )
    orchestrator = RefreshOrchestrator(
        facility_source=build_facility_chain(
            settings.facility_sources, _build_fetcher(settings, "facility_sources", metrics), metrics=metrics
        ),
        law_source=PrioritizedSourceChain([CuratedLawAdapter()]),
        news_source=PrioritizedSourceChain([GenerativeNewsAdapter(chat_client)]),
        geocoder=geocoder,
        store=store,
        regions=settings.regions,
        kind_delay_seconds=settings.REFRESH_KIND_DELAY_SECONDS,
        region_delay_seconds=settings.REFRESH_REGION_DELAY_SECONDS,
        metrics=metrics,
    )
    generation = FacilityGenerationService(
        adapter=GenerativeFacilityAdapter(chat_client),
        geocoder=geocoder,
        store=store,
        metrics=metrics,
    )
    return RefreshRuntime(store=store, geocoder=geocoder, orchestrator=orchestrator, generation=generation)


async def _open_store(store: DatasetStore) -> None:
    if isinstance(store, PostgresDatasetStore):
        await store.ensure_schema()


async def _close_store(store: DatasetStore) -> None:
    if isinstance(store, PostgresDatasetStore):
        await store.close()


async def _run_once(runtime: RefreshRuntime) -> int:
    await _open_store(runtime.store)
    try:
        report = await runtime.orchestrator.run_once()
    finally:
        await _close_store(runtime.store)
    pipeline_status.record(report)
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.status == "success" else 1


async def _generate(runtime: RefreshRuntime, region: str, include_stack: bool) -> int:
    await _open_store(runtime.store)
    try:
        result = await runtime.generation.generate(region)
    except Exception as exc:
        logger.exception("facility_generation_failed", extra={"region": region})
        print(json.dumps(build_error_payload(exc, include_stack=include_stack), indent=2), file=sys.stderr)
        return 1
    finally:
        await _close_store(runtime.store)
    print(json.dumps(result.to_dict(), indent=2))
    return 0


async def _serve(settings: RefreshSettings, runtime: RefreshRuntime) -> int:
    await _open_store(runtime.store)
    scheduler = RefreshScheduler(
        runtime.orchestrator,
        period_seconds=settings.REFRESH_PERIOD_SECONDS,
        on_report=pipeline_status.record,
    )
    server = uvicorn.Server(
        uvicorn.Config(
            create_monitoring_app(),
            host=settings.PIPELINE_MONITORING_HOST,
            port=settings.PIPELINE_MONITORING_PORT,
            log_level=settings.LOG_LEVEL.lower(),
        )
    )
    scheduler.start()
    pipeline_status.scheduler_started = True
    try:
        await server.serve()
    finally:
        pipeline_status.scheduler_started = False
        await scheduler.stop()
        await _close_store(runtime.store)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="care_refresh.jobs", description="Healthcare dataset refresh pipeline")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("serve", help="run the periodic refresh with the monitoring app")
    commands.add_parser("run-once", help="refresh every configured region once and exit")
    generate = commands.add_parser("generate", help="generate and store facilities for one region")
    generate.add_argument("region", help="two-letter region code, e.g. IN")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    configure_logging(settings.LOG_LEVEL)
    configure_otel(settings.SERVICE_NAME)
    runtime = build_runtime(settings)
    if args.command == "run-once":
        return asyncio.run(_run_once(runtime))
    if args.command == "generate":
        return asyncio.run(_generate(runtime, args.region, include_stack=not settings.is_production))
    return asyncio.run(_serve(settings, runtime))


if __name__ == "__main__":
    raise SystemExit(main())
