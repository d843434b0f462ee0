"""
Application settings for Orderline.

Values come from environment variables prefixed with ORDERLINE_
(or a local .env file).
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ORDERLINE_",
        env_file=".env",
        extra="ignore",
    )

    debug: bool = False
    log_level: str | None = None
    log_json: bool = False

    # Async URL for the notification tables (server side)
    database_url: str = "sqlite+aiosqlite:///./orderline.db"
    # Sync URL for profile key-value storage
    storage_url: str = "sqlite:///./orderline.db"

    backup_limit: int = 10
    strict_active_limit: bool = False

    reminders_enabled: bool = True
    reminder_interval_seconds: float = 300.0
    reminder_initial_delay_seconds: float = 10.0


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
