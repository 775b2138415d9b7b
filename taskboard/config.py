"""
Configuration and settings for the task board backend and its migration.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FIREBASE_URL = "https://creative33-9f884-default-rtdb.firebaseio.com"


class Settings(BaseSettings):
    """Environment-backed settings. Field names match the variable names."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Relational store (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # Legacy Firebase realtime database
    firebase_url: str = Field(default=DEFAULT_FIREBASE_URL)
    legacy_request_timeout: float = Field(default=30.0, gt=0)

    # Credentials
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # Migration toggles
    dedupe_contacts: bool = Field(default=False)

    log_level: str = Field(default="INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
