"""Application settings via pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

APP_VERSION = "0.1.0"


class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Privacy Reader API"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # Storage
    database_url: str = "postgresql+asyncpg://localhost/privacy_reader"
    valkey_url: str | None = None

    # LLM providers
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.5-flash"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    preferred_provider: str = "gemini"

    # Pipeline tuning
    freshness_window_days: int = 7
    html_cache_ttl_seconds: int = 60 * 60 * 24
    analysis_cache_ttl_seconds: int = 60 * 60 * 24 * 7
    http_timeout_seconds: float = 15.0
    browser_timeout_seconds: float = 30.0
    max_redirects: int = 5
    max_prompt_chars: int = 30_000
    max_raw_text_chars: int = 100_000

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def async_database_url(self) -> str:
        """Database URL with the asyncpg driver when a bare postgresql:// URL is given."""
        if self.database_url.startswith("postgresql://"):
            return self.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return self.database_url


@lru_cache
def get_settings() -> Settings:
    return Settings()
