"""
Alembic environment for the marketplace schema.

The URL comes from settings.DATABASE_URL_SYNC (psycopg2) unless one is
passed with `alembic -x url=...`, which is how a throwaway SQLite file is
migrated for local runs. On SQLite, ALTERs are emitted in batch mode so the
CHECK constraints behind the status columns survive table rebuilds.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from ridemarket.core.config import get_settings
from ridemarket.db.base import Base
import ridemarket.models  # noqa: F401 - registers every table on Base.metadata

config = context.config

url = context.get_x_argument(as_dictionary=True).get("url") or get_settings().DATABASE_URL_SYNC
config.set_main_option("sqlalchemy.url", url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the SQL script for a DBA instead of touching a database."""
    _configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
