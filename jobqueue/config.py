"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Store
    store_backend: Literal["redis", "memory"] = "redis"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0
    redis_key_prefix: str = "jobs"
    redis_socket_timeout_seconds: float = 5.0

    # Queue behaviour
    job_max_retries: int = Field(default=3, ge=1)
    job_retry_delay_ms: int = Field(default=5000, gt=0)
    job_timeout_ms: int = Field(default=30000, gt=0)
    job_concurrency: int = Field(default=5, ge=1)
    job_retention_days: int = Field(default=30, ge=1)

    # Scheduler loop
    scheduler_poll_interval_seconds: float = Field(default=1.0, gt=0)
    scheduler_error_backoff_seconds: float = Field(default=5.0, gt=0)

    # Recurring jobs
    recurring_jobs_enabled: bool = True
    timezone: str = "UTC"

    # Stats reporting
    stats_report_interval_seconds: float = Field(default=60.0, gt=0)

    # Dotted path ("module:callable") returning the handler dependencies
    dependencies_factory: str | None = None

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_secret_key: str = "your-secret-key-change-in-production"
    api_algorithm: str = "HS256"
    api_access_token_expire_minutes: int = 30

    # Observability
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "rental-job-queue"
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
