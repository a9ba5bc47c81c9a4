import os
from collections.abc import Mapping
from datetime import timedelta

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

# Variables reported by the health check
RECOGNISED_ENV_VARS = (
    "SUPABASE_ACCESS_TOKEN",
    "SUPABASE_PROJECT_REF",
    "DEBUG",
    "CACHE_TTL",
    "RETRY_MAX_ATTEMPTS",
)


class Settings(BaseModel):
    # Management API
    api_base_url: str = Field(
        default="https://api.supabase.com/v1", alias="SUPABASE_API_URL"
    )
    access_token: str | None = Field(default=None, alias="SUPABASE_ACCESS_TOKEN")
    request_timeout: float = Field(default=30.0, gt=0, alias="SUPABASE_REQUEST_TIMEOUT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Cache Configuration (durations in milliseconds)
    cache_enabled: bool = Field(default=True, alias="CACHE_ENABLED")
    cache_max_size: int = Field(default=100, ge=1, alias="CACHE_MAX_SIZE")
    cache_ttl_ms: int = Field(default=300_000, ge=0, alias="CACHE_TTL")
    cache_project_ttl_ms: int = Field(
        default=3_600_000, ge=0, alias="SUPABASE_CLI_CACHE_PROJECT_TTL"
    )

    # Retry Configuration
    retry_enabled: bool = Field(default=True, alias="RETRY_ENABLED")
    retry_max_attempts: int = Field(default=3, ge=1, alias="RETRY_MAX_ATTEMPTS")
    retry_initial_delay_ms: int = Field(default=1000, ge=0, alias="RETRY_INITIAL_DELAY")
    retry_max_delay_ms: int = Field(default=10_000, ge=0, alias="RETRY_MAX_DELAY")
    retry_backoff_multiplier: float = Field(
        default=2.0, ge=1.0, alias="RETRY_BACKOFF_MULTIPLIER"
    )

    # Circuit Breaker Configuration
    circuit_breaker_enabled: bool = Field(default=True, alias="CIRCUIT_BREAKER_ENABLED")
    circuit_breaker_threshold: int = Field(
        default=5, ge=1, alias="CIRCUIT_BREAKER_THRESHOLD"
    )
    circuit_breaker_timeout_ms: int = Field(
        default=30_000, ge=0, alias="CIRCUIT_BREAKER_TIMEOUT"
    )

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(milliseconds=self.cache_ttl_ms)

    @property
    def cache_project_ttl(self) -> timedelta:
        return timedelta(milliseconds=self.cache_project_ttl_ms)


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from the process environment (or a given mapping)."""
    source = os.environ if environ is None else environ
    values = {key: value for key, value in source.items() if value != ""}
    return Settings.model_validate(values)
