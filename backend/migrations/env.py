"""
Alembic Environment Configuration

Migrations for the enrichment pipeline tables:
1. DATABASE_URL comes from the environment (or .env)
2. All ORM models are imported so autogenerate sees them
3. Alembic runs on a SYNC driver, so async URLs are converted
"""
import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Add the backend directory to Python path so we can import our models
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# ============================================
# MODELS
# Required for autogenerate to detect schema changes
# ============================================
from leadflow.shared.db.base import Base
from leadflow.modules.enrichment.models import ClientConfig, FileUpload, JobLog, LeadEnrichment  # noqa: F401

config = context.config


def to_sync_url(url: str) -> str:
    """Async application URL → sync driver URL for Alembic."""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    url = url.replace("postgresql+asyncpg://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg2://", 1)
    return url.replace("sqlite+aiosqlite://", "sqlite://", 1)


# Overrides whatever is in alembic.ini
DATABASE_URL = os.environ.get("DATABASE_URL")
if DATABASE_URL:
    config.set_main_option("sqlalchemy.url", to_sync_url(DATABASE_URL))
else:
    raise ValueError("DATABASE_URL environment variable is not set!")

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode.
    Emits SQL scripts without connecting, for review before applying.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against the live database."""
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
