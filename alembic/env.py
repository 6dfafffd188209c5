from logging.config import fileConfig

from sqlalchemy import create_engine, pool, text

from alembic import context
from pipewatch.config.settings import DatabaseSettings

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

settings = DatabaseSettings()
DATABASE_URL = (
    f"postgresql+psycopg://{settings.user}:{settings.password}"
    f"@{settings.host}:{settings.port}/{settings.name}"
)


def run_migrations() -> None:
    """Apply migrations inside the executions schema, creating it first."""
    connectable = create_engine(DATABASE_URL, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        connection.execute(text(f"CREATE SCHEMA IF NOT EXISTS {settings.schema_}"))
        connection.commit()

        context.configure(connection=connection, version_table_schema=settings.schema_)

        with context.begin_transaction():
            context.run_migrations()


run_migrations()
