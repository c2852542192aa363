"""
Database handle.

One Database per process: connect() at startup, dispose() at shutdown.
Components receive sessions from it; nothing connects lazily on first use.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from leadflow.shared.core.constants import DB_MAX_OVERFLOW, DB_POOL_RECYCLE, DB_POOL_SIZE
from leadflow.shared.db.base import Base
from leadflow.shared.utils.exceptions import ConfigurationError

logger = logging.getLogger("database")


def normalize_database_url(url: str) -> str:
    """
    Force an async driver.
    Supabase hands out postgres:// and postgresql:// URLs; SQLAlchemy asyncio needs asyncpg.
    """
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


class Database:
    """Owns the async engine and the session factory."""

    def __init__(self, database_url: str, echo: bool = False):
        if not database_url:
            raise ConfigurationError("DATABASE_URL is required")
        self.url = normalize_database_url(database_url)
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not connected; call connect() first")
        return self._engine

    async def connect(self) -> None:
        """Create the engine and session factory."""
        if self._engine is not None:
            return

        if self.url.startswith("sqlite"):
            self._engine = create_async_engine(self.url, echo=self.echo)
        else:
            # PgBouncer / Supabase transaction pooler compatibility:
            # statement_cache_size=0 disables prepared statements
            self._engine = create_async_engine(
                self.url,
                echo=self.echo,
                pool_pre_ping=True,
                pool_size=DB_POOL_SIZE,
                max_overflow=DB_MAX_OVERFLOW,
                pool_recycle=DB_POOL_RECYCLE,
                connect_args={
                    "statement_cache_size": 0,
                    "prepared_statement_cache_size": 0
                }
            )

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False
        )
        logger.info(f"✅ Database engine initialized ({self._engine.dialect.name})")

    async def create_all(self) -> None:
        """Create tables if they don't exist. Local development and tests only; production uses Alembic."""
        # Register every model on Base.metadata
        import leadflow.modules.enrichment.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def session(self) -> AsyncSession:
        """New session. One per worker task; sessions are not shared between concurrent tasks."""
        if self._session_factory is None:
            raise RuntimeError("Database is not connected; call connect() first")
        return self._session_factory()

    async def dispose(self) -> None:
        """Close all pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine disposed")
