"""
Database Manager
================
Database connection and session management using SQLAlchemy Async.

The manager is constructed explicitly at startup and passed to every
repository; there is no module-level engine.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..core.config import StorageConfig
from ..core.logging_config import get_logger

logger = get_logger(__name__)


def to_async_url(url: str) -> str:
    """Rewrite a plain database URL to use an async driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


class DatabaseManager:
    """
    Manages database connection and session creation.
    """

    def __init__(self, config: StorageConfig):
        self.config = config
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker] = None

    @property
    def dialect_name(self) -> str:
        """Name of the connected SQL dialect (``postgresql``, ``sqlite``)."""
        if not self._engine:
            raise RuntimeError("DatabaseManager is not connected")
        return self._engine.dialect.name

    async def connect(self) -> None:
        """Initialize database connection pool."""
        if self._engine:
            return

        url = to_async_url(self.config.database_url)
        kwargs = {"echo": self.config.echo, "pool_pre_ping": True}
        if not url.startswith("sqlite"):
            kwargs["pool_size"] = self.config.database_pool_size
            kwargs["max_overflow"] = self.config.database_max_overflow

        self._engine = create_async_engine(url, **kwargs)
        self._sessionmaker = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        logger.info("Database connection established")

    async def disconnect(self) -> None:
        """Close database connection pool."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None
            logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Provide a transactional session.

        Commits when the block exits cleanly, rolls back and re-raises
        otherwise.
        """
        if not self._sessionmaker:
            await self.connect()

        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """Create all tables defined in metadata."""
        from .models import Base

        if not self._engine:
            await self.connect()

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created/verified")
