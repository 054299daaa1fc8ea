"""
Configuration and settings for the HabitForge backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:5174",
    "https://habitforge-tracker.web.app",
    "https://habitforge-tracker.firebaseapp.com",
]


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)
    log_level: str = Field(default="INFO")

    # Database (Postgres expected; unset falls back to the in-memory store)
    database_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Per-habit locks (Redis); unset falls back to in-process locks
    redis_url: Optional[str] = Field(default=None)
    redis_lock_prefix: str = Field(default="habitforge:locks")
    lock_timeout_seconds: float = Field(default=10.0, gt=0)
    lock_blocking_timeout_seconds: float = Field(default=5.0, gt=0)

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    cors_allow_credentials: bool = Field(default=True)

    # Streak statistics
    stats_window_days: int = Field(default=30, ge=1)
    weekly_window_days: int = Field(default=7, ge=1)
    completion_retry_attempts: int = Field(default=3, ge=1)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
