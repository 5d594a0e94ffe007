"""Core engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class PlatformEnv(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application settings loaded from environment variables with PLATFORM_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="PLATFORM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    env: PlatformEnv = PlatformEnv.DEV
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///.agency/state.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20

    # Cycle engine
    cycle_conflict_retries: int = 3

    structured_logging: bool = False

    @field_validator("cycle_conflict_retries")
    @classmethod
    def _retries_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("cycle_conflict_retries must be at least 1")
        return v

    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for environment: %s", settings.env.value)

    return settings
