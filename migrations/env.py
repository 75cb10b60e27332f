"""Alembic environment for the session lifecycle schema.

Migrations target ``ALEMBIC_URL`` when it is set and the application's own
database otherwise, so ``alembic upgrade head`` and the running service agree.
"""
from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool

from watchparty_stage.core.settings import settings
from watchparty_stage.db.session import Base, build_engine

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

DATABASE_URL = os.getenv("ALEMBIC_URL") or settings.database_url_sync


def _configure(**kwargs) -> None:
    # SQLite cannot ALTER most constraints in place.
    context.configure(
        target_metadata=Base.metadata,
        include_object=lambda obj, name, type_, reflected, compare_to: not (
            type_ == "table" and name == "alembic_version"
        ),
        compare_type=True,
        render_as_batch=DATABASE_URL.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the lifecycle DDL as SQL without connecting."""
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = build_engine(DATABASE_URL, poolclass=pool.NullPool)
    with connectable.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()
    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
