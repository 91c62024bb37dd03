"""Database configuration and connection management."""

import asyncio
from collections.abc import AsyncGenerator
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import settings
from app.core.exceptions import ConnectionUnavailableError
from app.models.appointment_details import metadata as appointment_details_metadata

logger = structlog.get_logger(__name__)


def to_async_url(url: str) -> str:
    """Convert a sync PostgreSQL URL to its asyncpg form."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def engine_options(url: str, pool_size: int = 10, max_overflow: int = 20) -> dict[str, Any]:
    """Build engine keyword arguments suitable for the URL's dialect."""
    options: dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    if url.startswith("postgresql"):
        options.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_recycle=3600,
            connect_args={
                "server_settings": {
                    "application_name": settings.app_name,
                },
            },
        )
    return options


DATABASE_URL = to_async_url(settings.database_url)

# Appointment store engine with connection pooling
engine: AsyncEngine = create_async_engine(DATABASE_URL, **engine_options(DATABASE_URL))

# Async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def check_database_connection() -> bool:
    """Check if database connection is healthy."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


class CountryDatabase:
    """
    Process-scoped handle on one country's relational store.

    The handle is created once per worker process and passed to the country
    processor. Initialization is lazy and guarded by a lock so concurrent
    callers never build two engines.
    """

    def __init__(self, country: str, url: str, pool_size: int = 5, max_overflow: int = 10):
        """Initialize the handle without connecting."""
        self.country = country
        self.url = to_async_url(url)
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None
        self._lock = asyncio.Lock()
        self._disposed = False

    @property
    def is_initialized(self) -> bool:
        """Whether the connection pool is currently open."""
        return self._sessionmaker is not None

    async def initialize(self) -> None:
        """Open the connection pool and create the detail table if missing."""
        async with self._lock:
            if self._sessionmaker is not None:
                return

            engine = create_async_engine(
                self.url,
                **engine_options(self.url, self._pool_size, self._max_overflow),
            )
            try:
                async with engine.begin() as conn:
                    await conn.run_sync(appointment_details_metadata.create_all)
            except Exception as e:
                await engine.dispose()
                logger.error(
                    "country_database_connection_failed",
                    country=self.country,
                    error=str(e),
                )
                raise

            self._engine = engine
            self._sessionmaker = async_sessionmaker(
                engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
            self._disposed = False
            logger.info("country_database_connected", country=self.country)

    def session(self) -> AsyncSession:
        """
        Open a session on the country database.

        Raises:
            ConnectionUnavailableError: If the handle is not initialized
        """
        if self._sessionmaker is None:
            reason = "not initialized" if self._disposed else "never initialized"
            logger.error("country_database_unavailable", country=self.country, reason=reason)
            raise ConnectionUnavailableError(self.country, reason)
        return self._sessionmaker()

    async def dispose(self) -> None:
        """Close the connection pool."""
        async with self._lock:
            if self._engine is None:
                return
            await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None
            self._disposed = True
            logger.info("country_database_closed", country=self.country)
