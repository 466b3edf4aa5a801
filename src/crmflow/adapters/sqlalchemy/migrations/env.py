"""Alembic runtime environment for the crmflow schema."""

from __future__ import annotations

from alembic import context
from sqlalchemy import create_engine, pool

from crmflow.adapters.sqlalchemy.mappings import mapper_registry, start_mappers
from crmflow.config import get_database_config

start_mappers()

config = context.config
target_metadata = mapper_registry.metadata
# SQLite needs batch mode to alter tables
OPTIONS = {"target_metadata": target_metadata, "render_as_batch": True, "compare_type": True}


def _url() -> str:
    return config.get_main_option("sqlalchemy.url") or get_database_config().uri


def _migrate(connection: object) -> None:
    context.configure(connection=connection, **OPTIONS)  # type: ignore[arg-type]
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    context.configure(url=_url(), literal_binds=True, **OPTIONS)  # type: ignore[arg-type]
    with context.begin_transaction():
        context.run_migrations()
elif (shared := config.attributes.get("connection")) is not None:
    _migrate(shared)
else:
    engine = create_engine(_url(), poolclass=pool.NullPool, future=True)
    try:
        with engine.connect() as connection:
            _migrate(connection)
    finally:
        engine.dispose()
