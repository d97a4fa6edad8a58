"""Alembic environment — Tally models, connected through ``DATABASE_URL``."""

from __future__ import annotations

from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import create_engine, pool

from alembic import context

load_dotenv()

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from tally.database.engine import database_url  # noqa: E402
from tally.database.models import Base  # noqa: E402

target_metadata = Base.metadata


def _database_url() -> str:
    return database_url(config.get_main_option("sqlalchemy.url"))


def run_migrations_offline() -> None:
    """Emit SQL for the migrations without a live connection."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations over a single unpooled connection."""
    connectable = create_engine(_database_url(), poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
