"""
alembic.env

Alembic migration environment for the Contract Conduit schema.

Responsibilities:
- Expose `contract_conduit` ORM metadata for autogeneration.
- Run migrations offline (SQL script) or online through the async engine.

Notes:
- Executed by Alembic, never imported by the FastAPI runtime.
- Prod runs migrations; dev/test create tables on startup (`db.init_db`).
"""

from __future__ import annotations

import asyncio
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from contract_conduit.db import models  # noqa: F401  # registers tables on Base.metadata
from contract_conduit.db.base import Base
from contract_conduit.settings import Settings

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _get_database_url() -> str:
    # An explicit env var wins so migrations can target another database.
    if "CONDUIT_DATABASE_URL" in os.environ:
        return os.environ["CONDUIT_DATABASE_URL"]
    return Settings().database_url


def run_migrations_offline() -> None:
    context.configure(
        url=_get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_sync_migrations(connection: Connection) -> None:
    # Batch mode lets ALTER TABLE work on SQLite.
    context.configure(connection=connection, target_metadata=target_metadata, render_as_batch=True)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = _get_database_url()
    connectable = async_engine_from_config(
        configuration, prefix="sqlalchemy.", poolclass=pool.NullPool
    )
    async with connectable.connect() as connection:
        await connection.run_sync(_run_sync_migrations)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())


# --- Module Notes -----------------------------------------------------------
# The database URL uses an async driver (aiosqlite / asyncpg), hence the async engine.
