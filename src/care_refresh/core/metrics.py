from __future__ import annotations

from collections import defaultdict


class InMemoryPipelineMetricsCollector:
    def __init__(self) -> None:
        self.stage_durations: dict[str, float] = {}
        self.external_api_error_count = 0
        self.processed_records = 0
        self.dropped_records = 0
        self.refresh_run_total: dict[str, int] = defaultdict(int)
        self.refresh_kind_total: dict[tuple[str, str, str], int] = defaultdict(int)
        self.refresh_records_total: dict[tuple[str, str, str], int] = defaultdict(int)
        self.refresh_duration_seconds: dict[str, float] = {}
        self.fallback_used_total: dict[str, int] = defaultdict(int)
        self.provider_http_errors_total: dict[tuple[str, str], int] = defaultdict(int)
        self.geocode_lookups_total: dict[str, int] = defaultdict(int)

    def observe_stage_duration(self, stage: str, duration_ms: float) -> None:
        self.stage_durations[stage] = duration_ms

    def increment_external_api_error(self) -> None:
        self.external_api_error_count += 1

    def increment_run(self, status: str) -> None:
        self.refresh_run_total[status] += 1

    def increment_kind(self, region: str, kind: str, status: str) -> None:
        self.refresh_kind_total[(region, kind, status)] += 1

    def add_records(self, region: str, kind: str, result: str, count: int) -> None:
        if count <= 0:
            return
        if result == "saved":
            self.processed_records += count
        elif result == "dropped":
            self.dropped_records += count
        self.refresh_records_total[(region, kind, result)] += count

    def observe_refresh_duration(self, region: str, duration_seconds: float) -> None:
        self.refresh_duration_seconds[region] = duration_seconds

    def increment_fallback(self, region: str) -> None:
        self.fallback_used_total[region] += 1

    def increment_provider_http_error(self, code: int | str, source: str) -> None:
        self.provider_http_errors_total[(source, str(code))] += 1

    def increment_geocode(self, result: str) -> None:
        self.geocode_lookups_total[result] += 1
