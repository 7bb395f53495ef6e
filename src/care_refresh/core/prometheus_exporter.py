from __future__ import annotations

from prometheus_client import CollectorRegistry, Gauge, generate_latest

from care_refresh.core.metrics import InMemoryPipelineMetricsCollector


class PipelinePrometheusExporter:
    def __init__(self) -> None:
        self._registry = CollectorRegistry()
        self._stage_duration = Gauge(
            "refresh_stage_duration_ms",
            "Refresh stage duration in milliseconds",
            labelnames=("stage",),
            registry=self._registry,
        )
        self._external_errors = Gauge(
            "refresh_external_api_errors_total",
            "External API error count",
            registry=self._registry,
        )
        self._processed_records = Gauge(
            "refresh_processed_records_total",
            "Persisted record count",
            registry=self._registry,
        )
        self._dropped_records = Gauge(
            "refresh_dropped_records_total",
            "Records dropped before persistence",
            registry=self._registry,
        )
        self._run_total = Gauge(
            "refresh_run_total",
            "Refresh runs grouped by status",
            labelnames=("status",),
            registry=self._registry,
        )
        self._kind_total = Gauge(
            "refresh_kind_total",
            "Refresh units grouped by region, data kind and status",
            labelnames=("region", "kind", "status"),
            registry=self._registry,
        )
        self._records_total = Gauge(
            "refresh_records_total",
            "Record counts grouped by region, data kind and result",
            labelnames=("region", "kind", "result"),
            registry=self._registry,
        )
        self._duration_seconds = Gauge(
            "refresh_region_duration_seconds",
            "Last refresh duration by region",
            labelnames=("region",),
            registry=self._registry,
        )
        self._fallback_total = Gauge(
            "refresh_fallback_used_total",
            "Static fallback dataset usage by region",
            labelnames=("region",),
            registry=self._registry,
        )
        self._http_errors_total = Gauge(
            "refresh_provider_http_errors_total",
            "Source HTTP errors grouped by source and code",
            labelnames=("source", "code"),
            registry=self._registry,
        )
        self._geocode_total = Gauge(
            "refresh_geocode_lookups_total",
            "Geocoder lookups grouped by result",
            labelnames=("result",),
            registry=self._registry,
        )

    def render(self, metrics: InMemoryPipelineMetricsCollector) -> str:
        for stage, duration in metrics.stage_durations.items():
            self._stage_duration.labels(stage=stage).set(duration)
        self._external_errors.set(metrics.external_api_error_count)
        self._processed_records.set(metrics.processed_records)
        self._dropped_records.set(metrics.dropped_records)
        for status, count in metrics.refresh_run_total.items():
            self._run_total.labels(status=status).set(count)
        for (region, kind, status), count in metrics.refresh_kind_total.items():
            self._kind_total.labels(region=region, kind=kind, status=status).set(count)
        for (region, kind, result), count in metrics.refresh_records_total.items():
            self._records_total.labels(region=region, kind=kind, result=result).set(count)
        for region, duration in metrics.refresh_duration_seconds.items():
            self._duration_seconds.labels(region=region).set(duration)
        for region, count in metrics.fallback_used_total.items():
            self._fallback_total.labels(region=region).set(count)
        for (source, code), count in metrics.provider_http_errors_total.items():
            self._http_errors_total.labels(source=source, code=code).set(count)
        for result, count in metrics.geocode_lookups_total.items():
            self._geocode_total.labels(result=result).set(count)
        return generate_latest(self._registry).decode("utf-8")
