from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Response

from care_refresh.core.metrics import InMemoryPipelineMetricsCollector
from care_refresh.monitoring.state import RefreshStatusBoard, pipeline_exporter, pipeline_metrics, pipeline_status
from care_refresh.observability import configure_probe_access_log_filter


def create_monitoring_app(
    metrics: InMemoryPipelineMetricsCollector = pipeline_metrics,
    status: RefreshStatusBoard = pipeline_status,
) -> FastAPI:
    app = FastAPI(title="Care Refresh Monitoring", version="0.1.0")
    configure_probe_access_log_filter()

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz() -> dict[str, str]:
        return {"status": "ready"}

    @app.get("/metrics")
    async def metrics_endpoint() -> Response:
        body = pipeline_exporter.render(metrics)
        return Response(content=body, media_type="text/plain; version=0.0.4")

    @app.get("/status")
    async def refresh_status() -> dict[str, Any]:
        report = status.last_report
        return {
            "scheduler_started": status.scheduler_started,
            "last_run": report.to_dict() if report else None,
        }

    return app


app = create_monitoring_app()
