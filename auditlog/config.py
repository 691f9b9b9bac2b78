"""Application configuration settings."""
from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Execution environment: "dev" | "test" | "staging" | "prod"
ENV = os.getenv("AUDITLOG_ENV", "dev").lower()

# Environments where startup may run Base.metadata.create_all()
CREATE_ALL_ENVS = {"dev", "local", "test"}


class Settings(BaseSettings):
    """Environment configuration for the audit log engine."""

    app_env: str = ENV

    # Local store: options, event buffer, scheduler lock. Also holds the
    # occurrence tables unless an external database is configured.
    database_url: str = "sqlite:///auditlog.db"
    external_database_url: str | None = None
    archive_database_url: str | None = None
    DB_CONNECT_TIMEOUT_SECONDS: int = 5

    DEFAULT_SITE_ID: int = 0

    # --- Defaults for runtime options (overridable in the options table) --
    USE_EXTERNAL_BUFFER: bool = False
    PRUNING_DATE_ENABLED: bool = False
    PRUNING_DATE: str = "6 months"
    PRUNING_LIMIT_ENABLED: bool = False
    PRUNING_LIMIT: int = 10000

    # Extra attempts for a failed metadata insert; 0 keeps the
    # "occurrence survives, metadata is dropped" behaviour.
    METADATA_RETRY_ATTEMPTS: int = 0

    # --- Scheduler -------------------------------------------------------
    SCHEDULER_ENABLED: bool = False
    PRUNE_INTERVAL_MINUTES: int = 60
    BUFFER_DRAIN_INTERVAL_SECONDS: int = 60

    ALLOW_DB_CREATE_ALL: bool = True
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = False

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8"
    )

    @field_validator("external_database_url", "archive_database_url")
    @classmethod
    def _strip_empty_url(cls, value: str | None) -> str | None:
        """Normalise empty database URLs to ``None``."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @field_validator("METADATA_RETRY_ATTEMPTS")
    @classmethod
    def _non_negative_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("METADATA_RETRY_ATTEMPTS must be >= 0")
        return value


class AppInfo(BaseModel):
    name: str = "auditlog-engine"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "CREATE_ALL_ENVS",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
