"""Centralized settings management for the event harvester."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import make_url

PACKAGE_DIR = Path(__file__).resolve().parents[1]

DEFAULT_USER_AGENT = "TouchGrass DC Event Crawler (https://touchgrassdc.com)"


class Settings(BaseSettings):
    """
    Application settings powered by pydantic-settings.

    Loads configuration from environment variables and a .env file in the
    working directory.
    """

    # -------------------------------------------------------------------------
    # ENVIRONMENT
    # -------------------------------------------------------------------------
    ENV: str = "development"
    DEBUG: bool = False
    TIMEZONE: str = "America/New_York"

    # -------------------------------------------------------------------------
    # LOGGING
    # -------------------------------------------------------------------------
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    LOG_FILE: Path | None = None

    # -------------------------------------------------------------------------
    # STORAGE & DOWNSTREAM WORKFLOW
    # -------------------------------------------------------------------------
    DATABASE_URL: str | None = None
    CROSS_RUN_DEDUP: bool = False
    WORKFLOW_ENDPOINT: str | None = None
    WORKFLOW_API_KEY: SecretStr | None = None
    WORKFLOW_TIMEOUT_S: float = Field(default=30.0, gt=0)
    EVENT_TYPE: str = "crawler.events"

    # -------------------------------------------------------------------------
    # AI EXTRACTION
    # -------------------------------------------------------------------------
    AI_ENABLED: bool = True
    AI_FALLBACK_ENABLED: bool = True
    AI_CONFIDENCE_THRESHOLD: float = Field(default=0.7, ge=0, le=1)
    AI_TIMEOUT_S: float = Field(default=60.0, gt=0)
    AI_MAX_RETRIES: int = Field(default=2, ge=0, le=5)
    AI_MAX_TEXT_CHARS: int = Field(default=8000, gt=0)
    LLM_PROVIDER: str = "openai"
    LLM_MODEL: str | None = None
    LLM_TEMPERATURE: float = 0.1
    LLM_MAX_TOKENS: int = 4000
    OPENAI_API_KEY: SecretStr | None = None
    ANTHROPIC_API_KEY: SecretStr | None = None

    # -------------------------------------------------------------------------
    # CRAWLING
    # -------------------------------------------------------------------------
    USER_AGENT: str = DEFAULT_USER_AGENT
    HEADLESS: bool = True
    PAGE_TIMEOUT_S: float = Field(default=30.0, gt=0)
    SELECTOR_WAIT_S: float = Field(default=10.0, ge=0)
    NAVIGATION_MAX_ATTEMPTS: int = Field(default=3, ge=1, le=5)
    NAVIGATION_RETRY_DELAY_S: float = Field(default=5.0, ge=0)
    REQUEST_DELAY_S: float = Field(default=2.0, ge=0)
    MAX_CONCURRENT_SOURCES: int = Field(default=1, ge=1, le=3)
    RUN_DEADLINE_S: float | None = Field(default=None, gt=0)

    # -------------------------------------------------------------------------
    # PATHS
    # -------------------------------------------------------------------------
    SOURCES_CONFIG_PATH: Path = PACKAGE_DIR / "configs" / "sources.yaml"

    # -------------------------------------------------------------------------
    # CONFIGURATION
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        # Allow extra fields in .env but ignore them in the model
        extra="ignore",
    )

    def llm_api_key(self) -> str | None:
        """API key for the configured LLM provider."""
        secret = {
            "openai": self.OPENAI_API_KEY,
            "anthropic": self.ANTHROPIC_API_KEY,
        }.get(self.LLM_PROVIDER)
        return secret.get_secret_value() if secret else None

    def get_psycopg2_params(self) -> dict:
        """
        Parse DATABASE_URL into psycopg2-compatible connection parameters.

        Returns
        -------
        dict
            psycopg2 connection arguments (host, port, dbname, user, password).
        """
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL is not configured")
        url = make_url(self.DATABASE_URL)
        return {
            "host": url.host,
            "port": url.port,
            "dbname": url.database,
            "user": url.username,
            "password": url.password,
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns
    -------
    Settings
        The singleton settings instance.
    """
    return Settings()
