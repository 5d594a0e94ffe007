"""Tests for core settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from agency_core.config import PlatformEnv, load_settings


class TestSettings:
    def test_defaults_to_local_sqlite(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PLATFORM_DATABASE_URL", raising=False)
        settings = load_settings()
        assert settings.is_sqlite()
        assert settings.cycle_conflict_retries == 3

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PLATFORM_ENV", "staging")
        monkeypatch.setenv("PLATFORM_DATABASE_URL", "postgresql+asyncpg://u:p@db/agency")
        settings = load_settings()
        assert settings.env == PlatformEnv.STAGING
        assert not settings.is_sqlite()

    def test_overrides(self) -> None:
        assert load_settings(cycle_conflict_retries=5).cycle_conflict_retries == 5

    def test_rejects_zero_retries(self) -> None:
        with pytest.raises(ValidationError):
            load_settings(cycle_conflict_retries=0)
