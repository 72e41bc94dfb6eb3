"""Migration environment for the document store.

The URL comes from the same settings as the application, rewritten to the
sync driver. The initial revision creates the pgvector extension itself.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from paperlens.config import get_settings
from paperlens.db.engine import resolve_database_url
from paperlens.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# configparser treats % as interpolation, so escape URL-encoded credentials
config.set_main_option(
    "sqlalchemy.url", resolve_database_url(get_settings(), sync=True).replace("%", "%%")
)


def run_migrations_offline() -> None:
    """Emit the migration SQL for the document store without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations to the live document store."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

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
