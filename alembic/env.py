"""Alembic environment.

The database URL comes from lms.core.config, the same DATABASE_URL the
service reads.  Migrations run synchronously through psycopg2, so the
async driver in the URL is swapped out.
"""

from __future__ import annotations

from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import make_url

from alembic import context
from lms.core.config import SETTINGS
from lms.db.engine import Base

config = context.config

if SETTINGS.database_url:
    sync_url = make_url(SETTINGS.database_url).set(drivername="postgresql+psycopg2")
    config.set_main_option(
        "sqlalchemy.url", sync_url.render_as_string(hide_password=False)
    )

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Registers every table on Base.metadata for autogenerate.
import lms.db.tables  # noqa: E402, F401

# Options shared by both modes; compare_type catches column type drift.
_CONTEXT_OPTIONS = {"target_metadata": Base.metadata, "compare_type": True}


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of executing it."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_CONTEXT_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_CONTEXT_OPTIONS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
