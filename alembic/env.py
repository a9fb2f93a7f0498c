"""Ambiente Alembic do catálogo (flattenTree). URL vem de AURA_DATABASE_URL."""
import os
from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

from aura_bot.repo.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

def _database_url() -> str:
    url = os.environ.get("AURA_DATABASE_URL")
    if not url:
        raise RuntimeError("AURA_DATABASE_URL não definida")
    return url

def run_migrations_offline():
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()

def run_migrations_online():
    connectable = engine_from_config({}, prefix="sqlalchemy.", poolclass=pool.NullPool, url=_database_url())
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
