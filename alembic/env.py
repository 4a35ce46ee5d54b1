from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from geminiflow.config import settings
from geminiflow.db import ensure_sqlite_dir
from geminiflow.models import Base

config = context.config
# callers such as the migration tests may point alembic at another database
if not config.get_main_option("sqlalchemy.url"):
  config.set_main_option("sqlalchemy.url", settings.database_url)
database_url = config.get_main_option("sqlalchemy.url")
is_sqlite = database_url.startswith("sqlite")

if config.config_file_name is not None:
  fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
  context.configure(
    url=database_url,
    target_metadata=target_metadata,
    literal_binds=True,
    dialect_opts={"paramstyle": "named"},
    render_as_batch=is_sqlite,
  )
  with context.begin_transaction():
    context.run_migrations()


def _do_run_migrations(connection: Connection) -> None:
  context.configure(connection=connection, target_metadata=target_metadata, render_as_batch=is_sqlite)
  with context.begin_transaction():
    context.run_migrations()


async def run_migrations_online() -> None:
  ensure_sqlite_dir()
  connectable = async_engine_from_config(
    config.get_section(config.config_ini_section, {}),
    prefix="sqlalchemy.",
    poolclass=pool.NullPool,
  )
  async with connectable.connect() as connection:
    await connection.run_sync(_do_run_migrations)
  await connectable.dispose()


if context.is_offline_mode():
  run_migrations_offline()
else:
  asyncio.run(run_migrations_online())
