"""
Configuration settings for sqlite-changestream.

Uses Pydantic Settings to load environment variables for the SQLite connection,
logging, and the polling loop. CLI options take precedence over these values.
"""
from __future__ import annotations

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    json_logs: bool = Field(False, alias="CHANGESTREAM_JSON_LOGS")

    # Poller
    poll_interval_seconds: float = Field(1.0, gt=0, alias="CHANGESTREAM_POLL_INTERVAL")
    poll_batch_size: int = Field(500, gt=0, alias="CHANGESTREAM_BATCH_SIZE")

    # SQLite
    busy_timeout_ms: int = Field(5_000, ge=0, alias="CHANGESTREAM_BUSY_TIMEOUT_MS")
    journal_mode: str = Field("WAL", alias="CHANGESTREAM_JOURNAL_MODE")
    connect_attempts: int = Field(3, ge=1, alias="CHANGESTREAM_CONNECT_ATTEMPTS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
