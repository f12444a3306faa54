"""
Database Management for the reference remote store.

This module sets up the asynchronous database connection used by the remote
store. It uses SQLAlchemy with `asyncio` support and SQLModel for the table
models.

Key Components:
- `build_engine`: Creates an async engine for a database URL. SQLite (via
  `aiosqlite`) is used for development and tests, PostgreSQL (via `asyncpg`)
  for production.
- `build_session_factory`: An async session factory bound to an engine.
- `TableInitializer`: Lazily creates the tables once per process. Concurrent
  first callers wait on the same initialization; a failed attempt is forgotten
  so the next caller retries.
- `get_database_info`: Diagnostic information for the health endpoints.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from core.exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine based on database type"""
    if database_url.startswith("sqlite"):
        if ":memory:" in database_url or database_url.rstrip("/").endswith(
            "aiosqlite:"
        ):
            # One shared connection so every session sees the same in-memory db
            return create_async_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=False,
            )
        return create_async_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=False,  # Set to True for SQL debugging
        )

    return create_async_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Validate connections before use
        echo=False,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class TableInitializer:
    """Process-wide, lazily-run table creation"""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def ensure_tables(self) -> None:
        if self._initialized:
            return

        async with self._lock:
            # Another caller may have finished while we waited
            if self._initialized:
                return
            try:
                async with self.engine.begin() as conn:
                    await conn.run_sync(SQLModel.metadata.create_all)
            except Exception as e:
                logger.error(f"Table init error: {e}")
                raise DatabaseConnectionError("create_tables", str(e)) from e

            self._initialized = True
            logger.info("Remote store tables ready")

    def reset(self) -> None:
        """Forget a previous initialization (e.g. after the database was dropped)"""
        self._initialized = False


async def get_database_info(
    engine: AsyncEngine, database_url: Optional[str] = None
) -> Dict[str, Any]:
    """
    Get basic database information for health checks.
    """
    database_url = database_url or str(engine.url)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        connection_healthy = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        connection_healthy = False

    return {
        "database_url": database_url.split("@")[1]
        if "@" in database_url
        else "masked",  # Hide credentials
        "connection_healthy": connection_healthy,
        "database_type": "postgresql" if "postgresql" in database_url else "sqlite",
    }
