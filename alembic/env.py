"""
Alembic Environment Configuration for roomsync

This file configures Alembic to:
- Read DATABASE_URL through the application settings
- Auto-detect model changes for migrations
"""

from logging.config import fileConfig

from sqlalchemy import pool

from alembic import context

# Import our Base and all models for autogenerate
from roomsync.config import get_settings
from roomsync.database import Base, build_engine, normalize_database_url
from roomsync import models  # noqa: F401

# this is the Alembic Config object
config = context.config

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# The metadata object for autogenerate support
target_metadata = Base.metadata


def get_database_url() -> str:
    """DATABASE_URL from the environment / .env, normalized for SQLAlchemy"""
    return normalize_database_url(get_settings().database_url)


def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode.

    Calls to context.execute() here emit the given string to the
    script output.
    """
    url = get_database_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live connection"""
    url = get_database_url()
    connectable = build_engine(url, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=url.startswith("sqlite"),  # Batch mode for SQLite
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
