from __future__ import annotations

import json

import pytest

from care_refresh.config import load_settings
from care_refresh.core.exceptions import ConfigurationError, GenerationParseError
from care_refresh.jobs import __main__ as job_main
from care_refresh.jobs.__main__ import _build_store, build_parser, build_runtime
from care_refresh.jobs.generation import GenerationResult
from care_refresh.jobs.postgres_store import PostgresDatasetStore
from care_refresh.jobs.store import JsonlDatasetStore


@pytest.fixture(autouse=True)
def quiet_entrypoint(monkeypatch) -> None:
    monkeypatch.setattr(job_main, "configure_logging", lambda level: None)
    monkeypatch.setattr(job_main, "configure_otel", lambda service_name: None)


def test_build_store_defaults_to_jsonl(tmp_path) -> None:
    store = _build_store(load_settings(PIPELINE_OUTPUT_DIR=str(tmp_path)))
    assert isinstance(store, JsonlDatasetStore)


def test_build_store_requires_database_url_for_postgres(monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(ConfigurationError):
        _build_store(load_settings(PIPELINE_STORE_BACKEND="postgres"))


def test_build_store_uses_postgres_when_configured() -> None:
    store = _build_store(
        load_settings(PIPELINE_STORE_BACKEND="postgres", DATABASE_URL="postgresql://example", NEWS_RECENCY_DAYS=14)
    )
    assert isinstance(store, PostgresDatasetStore)
    assert store.news_recency_days == 14


def test_build_store_rejects_unknown_backend() -> None:
    with pytest.raises(ConfigurationError):
        _build_store(load_settings(PIPELINE_STORE_BACKEND="sqlite"))


def test_build_runtime_rejects_unknown_facility_source(tmp_path) -> None:
    with pytest.raises(ValueError):
        build_runtime(load_settings(PIPELINE_OUTPUT_DIR=str(tmp_path), PIPELINE_FACILITY_SOURCES="hhs_markup,unknown"))


def test_build_runtime_wires_regions(tmp_path) -> None:
    runtime = build_runtime(load_settings(PIPELINE_OUTPUT_DIR=str(tmp_path), REFRESH_REGIONS="oh,ky"))
    assert runtime.orchestrator.regions == ("OH", "KY")


def test_parser_requires_region_for_generate() -> None:
    parser = build_parser()
    assert parser.parse_args(["generate", "IN"]).region == "IN"
    with pytest.raises(SystemExit):
        parser.parse_args(["generate"])


def test_generate_command_prints_error_payload_without_stack_in_production(monkeypatch, tmp_path, capsys) -> None:
    async def failing_generate(self, region: str) -> GenerationResult:
        raise GenerationParseError("Invalid JSON response: Response is not an array")

    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("PIPELINE_OUTPUT_DIR", str(tmp_path))
    monkeypatch.setattr(job_main.FacilityGenerationService, "generate", failing_generate)

    exit_code = job_main.main(["generate", "IN"])

    payload = json.loads(capsys.readouterr().err)
    assert exit_code == 1
    assert payload == {
        "error": "Failed to generate facilities",
        "details": "Invalid JSON response: Response is not an array",
    }


def test_generate_command_prints_result(monkeypatch, tmp_path, capsys) -> None:
    async def fake_generate(self, region: str) -> GenerationResult:
        return GenerationResult(region=region, count=3, facilities=[])

    monkeypatch.setenv("PIPELINE_OUTPUT_DIR", str(tmp_path))
    monkeypatch.setattr(job_main.FacilityGenerationService, "generate", fake_generate)

    assert job_main.main(["generate", "IL"]) == 0
    assert json.loads(capsys.readouterr().out)["count"] == 3
