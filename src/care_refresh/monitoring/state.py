from __future__ import annotations

from care_refresh.core.metrics import InMemoryPipelineMetricsCollector
from care_refresh.core.pipeline import RefreshRunReport
from care_refresh.core.prometheus_exporter import PipelinePrometheusExporter


class RefreshStatusBoard:
    """Holds the most recent run report for the ``/status`` probe."""

    def __init__(self) -> None:
        self.last_report: RefreshRunReport | None = None
        self.scheduler_started = False

    def record(self, report: RefreshRunReport) -> None:
        self.last_report = report


pipeline_metrics = InMemoryPipelineMetricsCollector()
pipeline_exporter = PipelinePrometheusExporter()
pipeline_status = RefreshStatusBoard()
