"""Shared fixtures for agency CLI tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import Result
from typer.testing import CliRunner

from agency_cli.app import app


@pytest.fixture()
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture()
def invoke(database_url: str) -> Callable[..., Result]:
    """Run the CLI against a fresh SQLite file, optionally in JSON mode."""
    runner = CliRunner()

    def _invoke(*args: str, json_mode: bool = False) -> Result:
        options = ["--database-url", database_url]
        if json_mode:
            options.append("--json")
        return runner.invoke(app, [*options, *args])

    return _invoke


@pytest.fixture()
def acme(invoke: Callable[..., Result]) -> str:
    """Initialised database with tenant ``t-acme`` (10h/month, carry)."""
    assert invoke("init-db").exit_code == 0
    result = invoke("tenant", "add", "Acme Bakery", "--id", "t-acme", "--hours", "10", "--carryover", "carry")
    assert result.exit_code == 0, result.output
    return "t-acme"
