"""Alembic environment for the maintenance store.

The target URL is, in order: ``ALEMBIC_DATABASE_URL``, the application's
``PLATFORM_DATABASE_URL`` (via :func:`agency_core.config.load_settings`),
then ``sqlalchemy.url`` from ``alembic.ini``.  Async driver prefixes are
swapped for their sync counterparts since migrations run synchronously.
SQLite runs in batch mode so ALTERs are emulated by table copies.
"""

from __future__ import annotations

import logging
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from agency_core.config import load_settings
from agency_core.state.tables import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata

_SYNC_DRIVERS = (
    ("postgresql+asyncpg://", "postgresql+psycopg://"),
    ("postgresql://", "postgresql+psycopg://"),
    ("sqlite+aiosqlite://", "sqlite://"),
)


def _sync_url(url: str) -> str:
    for async_prefix, sync_prefix in _SYNC_DRIVERS:
        if url.startswith(async_prefix):
            url = sync_prefix + url[len(async_prefix) :]
            break
    # asyncpg spells it ``ssl``, libpq spells it ``sslmode``.
    return url.replace("ssl=require", "sslmode=require")


def _database_url() -> str:
    url = os.environ.get("ALEMBIC_DATABASE_URL")
    if not url and os.environ.get("PLATFORM_DATABASE_URL"):
        url = load_settings().database_url
    if not url:
        url = config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("No database URL: set ALEMBIC_DATABASE_URL or PLATFORM_DATABASE_URL")
    url = _sync_url(url)
    logger.info("Migrating %s", url.split("@")[-1])
    return url


def run_migrations_offline() -> None:
    """Write migration SQL to stdout without connecting."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = _database_url()
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                compare_type=True,
                render_as_batch=connection.dialect.name == "sqlite",
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
