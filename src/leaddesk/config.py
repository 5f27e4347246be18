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
    """Application settings loaded from environment variables and .env file.

    Read once at process start. The presence of both Supabase connection
    parameters is the single switch between remote-backed and local-only
    persistence.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Hosted relational store (Supabase / PostgREST)
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_TIMEOUT: float | None = None  # None disables the client timeout

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ALLOWED_ORIGINS: str = "*"

    def supabase_configured(self) -> bool:
        """Return True when both the store URL and key are set."""
        return bool(self.SUPABASE_URL and self.SUPABASE_ANON_KEY)


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
