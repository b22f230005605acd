"""Alembic environment configuration for the central store

Tenant stores are created from the models by TenantDatabaseManager when a
tenant is provisioned; only the central schema is migrated here.
"""

from logging.config import fileConfig
from sqlalchemy import create_engine, pool
from alembic import context

from membership.core.config import get_settings
from membership.models import central_tables
from sqlmodel import SQLModel

# this is the Alembic Config object
config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata
CENTRAL_TABLES = {table.name for table in central_tables()}


def get_url():
    """Database URL from the application settings"""
    return get_settings().DATABASE_URL


def include_object(object, name, type_, reflected, compare_to):
    """Skip tenant store tables"""
    if type_ == "table":
        return name in CENTRAL_TABLES
    table = getattr(object, "table", None)
    if table is not None:
        return table.name in CENTRAL_TABLES
    return True


def run_migrations_offline():
    """Run migrations in 'offline' mode"""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    """Run migrations in 'online' mode"""
    connectable = create_engine(get_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
