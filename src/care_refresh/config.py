from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SIX_HOURS_IN_SECONDS = 6 * 60 * 60


class RefreshSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    SERVICE_NAME: str = "care-refresh"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    PIPELINE_STORE_BACKEND: str = "jsonl"
    PIPELINE_OUTPUT_DIR: str = "runtime"
    DATABASE_URL: str | None = None

    REFRESH_REGIONS: str = "IN,IL"
    REFRESH_PERIOD_SECONDS: float = SIX_HOURS_IN_SECONDS
    REFRESH_KIND_DELAY_SECONDS: float = 5.0
    REFRESH_REGION_DELAY_SECONDS: float = 10.0
    NEWS_RECENCY_DAYS: int = 30

    PIPELINE_FACILITY_SOURCES: str = "hhs_markup,hrsa_directory_api"
    FETCH_TIMEOUT_SECONDS: float = 10.0
    FETCH_MAX_REDIRECTS: int = 5
    FETCH_BASE_DELAY_SECONDS: float = 1.0
    FETCH_RETRY_DELAY_SECONDS: float = 2.0
    FETCH_MAX_RETRIES: int = 2

    GEOCODER_URL: str = "https://nominatim.openstreetmap.org/search"
    GEOCODER_USER_AGENT: str = "HealthcareFinder/1.0"
    GEOCODER_MAX_RETRIES: int = 3
    GEOCODER_BASE_DELAY_SECONDS: float = 1.0

    GROQ_API_KEY: str | None = None
    GENERATIVE_BASE_URL: str = "https://api.groq.com/openai/v1"
    GENERATIVE_MODEL: str = "mixtral-8x7b-32768"
    GENERATIVE_TIMEOUT_SECONDS: float = 60.0

    PIPELINE_MONITORING_HOST: str = "0.0.0.0"
    PIPELINE_MONITORING_PORT: int = 8001

    @field_validator(
        "REFRESH_PERIOD_SECONDS",
        "FETCH_TIMEOUT_SECONDS",
        "GENERATIVE_TIMEOUT_SECONDS",
    )
    @classmethod
    def _positive_float(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator(
        "REFRESH_KIND_DELAY_SECONDS",
        "REFRESH_REGION_DELAY_SECONDS",
        "FETCH_BASE_DELAY_SECONDS",
        "FETCH_RETRY_DELAY_SECONDS",
        "GEOCODER_BASE_DELAY_SECONDS",
    )
    @classmethod
    def _non_negative_float(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator("NEWS_RECENCY_DAYS", "FETCH_MAX_REDIRECTS")
    @classmethod
    def _positive_int(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("FETCH_MAX_RETRIES", "GEOCODER_MAX_RETRIES")
    @classmethod
    def _non_negative_int(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @property
    def regions(self) -> tuple[str, ...]:
        return _split_csv(self.REFRESH_REGIONS, upper=True)

    @property
    def facility_sources(self) -> tuple[str, ...]:
        return _split_csv(self.PIPELINE_FACILITY_SOURCES)

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


def _split_csv(value: str, upper: bool = False) -> tuple[str, ...]:
    items = [item.strip() for item in value.split(",") if item.strip()]
    if upper:
        items = [item.upper() for item in items]
    return tuple(items)


def load_settings(**overrides: object) -> RefreshSettings:
    return RefreshSettings(**overrides)
