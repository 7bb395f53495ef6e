from __future__ import annotations

import pytest
from pydantic import ValidationError as SettingsValidationError

from care_refresh.config import SIX_HOURS_IN_SECONDS, load_settings


def test_defaults(monkeypatch) -> None:
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    monkeypatch.delenv("REFRESH_REGIONS", raising=False)
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    settings = load_settings()

    assert settings.regions == ("IN", "IL")
    assert settings.REFRESH_PERIOD_SECONDS == SIX_HOURS_IN_SECONDS
    assert settings.facility_sources == ("hhs_markup", "hrsa_directory_api")
    assert settings.is_production is False


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("REFRESH_REGIONS", " in, oh ,")
    monkeypatch.setenv("ENVIRONMENT", "Production")
    monkeypatch.setenv("FETCH_MAX_RETRIES", "4")
    settings = load_settings()

    assert settings.regions == ("IN", "OH")
    assert settings.is_production is True
    assert settings.FETCH_MAX_RETRIES == 4


def test_invalid_values_are_rejected(monkeypatch) -> None:
    monkeypatch.setenv("REFRESH_PERIOD_SECONDS", "0")

    with pytest.raises(SettingsValidationError):
        load_settings()
