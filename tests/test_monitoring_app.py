from __future__ import annotations

from datetime import datetime, timezone

from fastapi.testclient import TestClient

from care_refresh.core.metrics import InMemoryPipelineMetricsCollector
from care_refresh.core.models import DataKind
from care_refresh.core.pipeline import KindOutcome, RefreshRunReport
from care_refresh.monitoring.app import create_monitoring_app
from care_refresh.monitoring.state import RefreshStatusBoard


def test_probes_report_ok() -> None:
    client = TestClient(create_monitoring_app())

    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/readyz").json() == {"status": "ready"}


def test_metrics_endpoint_exposes_refresh_metrics() -> None:
    metrics = InMemoryPipelineMetricsCollector()
    metrics.observe_stage_duration("persist_facilities", 3.0)
    metrics.add_records("IN", "facilities", "saved", 2)
    client = TestClient(create_monitoring_app(metrics=metrics))

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "refresh_stage_duration_ms" in response.text
    assert "refresh_processed_records_total 2.0" in response.text


def test_status_endpoint_returns_last_report() -> None:
    status = RefreshStatusBoard()
    client = TestClient(create_monitoring_app(status=status))
    assert client.get("/status").json() == {"scheduler_started": False, "last_run": None}

    started = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)
    status.record(
        RefreshRunReport(
            started_at=started,
            finished_at=started,
            outcomes=[KindOutcome(region="IN", kind=DataKind.NEWS, status="failed", error="timeout")],
        )
    )
    body = client.get("/status").json()

    assert body["last_run"]["status"] == "partial"
    assert body["last_run"]["outcomes"][0] == {
        "region": "IN",
        "kind": "news",
        "status": "failed",
        "saved_count": 0,
        "dropped_count": 0,
        "used_fallback": False,
        "error": "timeout",
    }
