from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

# config loads .env from the project root (secrets are never printed)
from report_ingest.config import settings
from report_ingest.database.connection import Base
from report_ingest.database import models  # noqa: F401

config = context.config
if config.config_file_name:
    fileConfig(config.config_file_name)

# report tables are registered on Base; enables `alembic revision --autogenerate`
target_metadata = Base.metadata


def get_url():
    # Prefer DATABASE_URL (already normalized to psycopg v3); fall back to ini only if not a dummy
    url = settings.get("DATABASE_URL")
    if url:
        return url
    cfg_url = (config.get_main_option("sqlalchemy.url") or "").strip()
    if cfg_url and not cfg_url.startswith("driver://"):
        return cfg_url
    raise RuntimeError("DATABASE_URL missing. Put a real DSN in .env or set sqlalchemy.url (not 'driver://').")


def run_migrations_offline():
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"}
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = create_engine(get_url(), poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
