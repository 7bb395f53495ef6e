from care_refresh.core.metrics import InMemoryPipelineMetricsCollector
from care_refresh.core.prometheus_exporter import PipelinePrometheusExporter


def test_prometheus_exporter_renders_refresh_metrics() -> None:
    metrics = InMemoryPipelineMetricsCollector()
    metrics.observe_stage_duration("fetch_facilities", 12.5)
    metrics.increment_external_api_error()
    metrics.increment_run("partial")
    metrics.increment_kind("IN", "news", "failed")
    metrics.add_records("IN", "facilities", "saved", 4)
    metrics.increment_fallback("IL")
    metrics.increment_provider_http_error(code=503, source="hhs_markup")
    metrics.increment_geocode("cache_hit")

    body = PipelinePrometheusExporter().render(metrics)

    assert 'refresh_stage_duration_ms{stage="fetch_facilities"} 12.5' in body
    assert "refresh_external_api_errors_total 1.0" in body
    assert "refresh_processed_records_total 4.0" in body
    assert 'refresh_run_total{status="partial"} 1.0' in body
    assert 'refresh_kind_total{kind="news",region="IN",status="failed"} 1.0' in body
    assert 'refresh_fallback_used_total{region="IL"} 1.0' in body
    assert 'refresh_provider_http_errors_total{code="503",source="hhs_markup"} 1.0' in body
    assert 'refresh_geocode_lookups_total{result="cache_hit"} 1.0' in body


def test_add_records_ignores_empty_counts() -> None:
    metrics = InMemoryPipelineMetricsCollector()
    metrics.add_records("IN", "laws", "dropped", 0)
    metrics.add_records("IN", "laws", "dropped", 2)

    assert metrics.dropped_records == 2
    assert dict(metrics.refresh_records_total) == {("IN", "laws", "dropped"): 2}


def test_stage_durations_keep_only_latest_value_and_dropped_count_is_exported() -> None:
    metrics = InMemoryPipelineMetricsCollector()
    for duration in (10.0, 20.0, 30.0):
        metrics.observe_stage_duration("persist_news", duration)
    metrics.add_records("IL", "news", "dropped", 3)

    body = PipelinePrometheusExporter().render(metrics)

    assert metrics.stage_durations == {"persist_news": 30.0}
    assert 'refresh_stage_duration_ms{stage="persist_news"} 30.0' in body
    assert "refresh_dropped_records_total 3.0" in body
