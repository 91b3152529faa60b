"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Dispatcher error handling: immediate, delayed or silent
    OUTBOUND_ERROR_MODE: str = "immediate"

    # Comma-separated object types allowed to register lifecycle handlers.
    # Empty means every object type is allowed.
    OUTBOUND_LIFECYCLE_SOURCES: str = ""

    # Prometheus metrics
    OUTBOUND_METRICS_ENABLED: bool = True

    def get_lifecycle_sources(self) -> set[str] | None:
        """Return the lifecycle allow-list, or None when unrestricted."""
        sources = {s.strip() for s in self.OUTBOUND_LIFECYCLE_SOURCES.split(",") if s.strip()}
        return sources or None


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
