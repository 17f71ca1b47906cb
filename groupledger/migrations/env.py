"""
groupledger/migrations/env.py — Alembic environment.

The database URL comes from the same config classes the app uses. Pick one
with GROUPLEDGER_CONFIG (development, testing, production; default
development):

    GROUPLEDGER_CONFIG=production alembic upgrade head

SQLite targets run in batch mode, since SQLite cannot ALTER most constraints
in place.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from groupledger.app.extensions import db
from groupledger.app.models import (  # noqa: F401
    expense,
    group,
    membership,
    settlement,
    split,
)
from groupledger.config import config_by_name

config_name = os.getenv("GROUPLEDGER_CONFIG", "development")
if config_name not in config_by_name:
    raise ValueError(
        f"GROUPLEDGER_CONFIG={config_name!r}; expected one of {', '.join(config_by_name)}."
    )
db_url = config_by_name[config_name].SQLALCHEMY_DATABASE_URI
if not db_url:
    raise ValueError(f"No database URL configured for {config_name!r}. Set DATABASE_URL.")

config = context.config
config.set_main_option("sqlalchemy.url", db_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = db.metadata
_batch = db_url.startswith("sqlite")


def run_migrations_offline() -> None:
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=_batch,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=_batch,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
