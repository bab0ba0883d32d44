"""Alembic environment — runs migrations against leadflow.config.DATABASE_URL."""
import importlib

from alembic import context

from leadflow.database import Base, engine

for module in ('lead', 'stage_history', 'external_record', 'qualification_criterion'):
    importlib.import_module(f'leadflow.models.{module}')

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=str(engine.url),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
