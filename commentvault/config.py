"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from commentvault.constants import (
    CRAWL_PAGE_CONCURRENCY,
    CRAWL_PAGE_MAX_ATTEMPTS,
    CRAWL_TRIGGER_CONCURRENCY,
    CRAWL_TRIGGER_MAX_ATTEMPTS,
    YOUTUBE_PAGE_DELAY,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_env: Literal["development", "production", "test"] = "development"
    app_name: str = "commentvault"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None

    # Database
    database_url: str = "postgresql://localhost:5432/commentvault"
    database_echo: bool = False

    # Redis (event queue)
    redis_url: str = "redis://localhost:6379/0"
    event_queue_key: str = "commentvault:events"

    # Front door
    event_signing_key: str = ""

    # YouTube
    youtube_language: str | None = None
    youtube_page_delay: float = YOUTUBE_PAGE_DELAY

    # Proxies: JSON document {"providers": [...], "rotationStrategy": "round_robin"}
    proxy_config: str = ""
    proxy_url: str = ""
    proxy_username: str = ""
    proxy_password: str = ""

    # Crawl policies
    crawl_retrigger_policy: Literal["skip", "proceed"] = "skip"
    comment_batch_policy: Literal["strict", "lenient"] = "strict"
    crawl_fail_on_exhausted_retries: bool = False
    backfill_video_metadata: bool = True

    # Event handlers
    crawl_trigger_concurrency: int = Field(default=CRAWL_TRIGGER_CONCURRENCY, ge=1)
    crawl_trigger_max_attempts: int = Field(default=CRAWL_TRIGGER_MAX_ATTEMPTS, ge=1)
    crawl_page_concurrency: int = Field(default=CRAWL_PAGE_CONCURRENCY, ge=1)
    crawl_page_max_attempts: int = Field(default=CRAWL_PAGE_MAX_ATTEMPTS, ge=1)

    @field_validator("youtube_language")
    @classmethod
    def validate_language(cls, v: str | None) -> str | None:
        """Treat an empty language as unset."""
        if v is not None and not v.strip():
            return None
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def database_url_async(self) -> str:
        """Get async database URL (postgresql+asyncpg)."""
        url = str(self.database_url)
        return url.replace("postgresql://", "postgresql+asyncpg://")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
