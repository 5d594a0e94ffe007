"""API-layer configuration loaded from environment variables."""

from __future__ import annotations

from enum import Enum
from typing import Self

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PlatformEnv(str, Enum):
    """Deployment environment labels."""

    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class APISettings(BaseSettings):
    """FastAPI application settings.

    All values can be overridden via environment variables prefixed with
    ``API_`` (e.g. ``API_HOST=0.0.0.0``) or through a ``.env`` file in the
    working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # SQLite (aiosqlite) locally, PostgreSQL (asyncpg) in deployments.
    database_url: str = "sqlite+aiosqlite:///.agency/state.db"

    platform_env: PlatformEnv = PlatformEnv.DEV

    # Origins permitted by the CORS middleware.
    cors_origins: list[str] = ["http://localhost:3000"]

    # Whether CORS responses include credentials (cookies, auth headers).
    cors_allow_credentials: bool = True

    # HMAC secret for bearer tokens.  Empty in dev means a random
    # per-process secret; required outside dev.
    auth_secret: SecretStr = SecretStr("")
    token_ttl_seconds: int = 3600

    # Structured JSON logging for log aggregation.
    structured_logging: bool = False

    # Name of the hours policy applied to overrides and time entries.
    hours_policy: str = "permissive"

    # Insert-then-read rounds before a cycle creation conflict is reported.
    cycle_conflict_retries: int = 3

    @model_validator(mode="after")
    def _validate_cors_credentials_not_wildcard(self) -> Self:
        """Reject wildcard origins when credentials are enabled."""
        if self.cors_allow_credentials and "*" in self.cors_origins:
            raise ValueError(
                "Cannot use wildcard origins with credentials. "
                "Specify explicit origins instead of '*' when "
                "cors_allow_credentials=True."
            )
        return self

    @field_validator("hours_policy")
    @classmethod
    def _known_hours_policy(cls, v: str) -> str:
        from agency_core.maintenance.policy import get_hours_policy

        get_hours_policy(v)
        return v

    @field_validator("cycle_conflict_retries")
    @classmethod
    def _retries_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("cycle_conflict_retries must be at least 1")
        return v

    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


def load_api_settings() -> APISettings:
    """Construct settings from the environment / ``.env`` file."""
    return APISettings()
