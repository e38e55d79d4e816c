"""
Async database session management — PostgreSQL, SQLite.

Driver mapping:
  postgresql://  → postgresql+asyncpg://     (requires asyncpg)
  sqlite://      → sqlite+aiosqlite://       (requires aiosqlite)

The engine is owned by whoever opens it (the API lifespan or a worker
entry point) and handed to the stores that need it:

    db = Database(settings.database)
    await db.connect()
    await db.init_schema()
    async with db.session() as session:
        result = await session.execute(...)
    await db.close()
"""
from __future__ import annotations

import structlog
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker,
)

from config.settings import DatabaseConfig
from database.models import Base

logger = structlog.get_logger()


def _to_async_url(db_url: str) -> str:
    """Convert a sync database URL to its async driver equivalent."""
    replacements = [
        ("postgresql://", "postgresql+asyncpg://"),
        ("postgres://", "postgresql+asyncpg://"),
        ("sqlite://", "sqlite+aiosqlite://"),
    ]
    for sync_prefix, async_prefix in replacements:
        if db_url.startswith(sync_prefix):
            return db_url.replace(sync_prefix, async_prefix, 1)
    # Already has an async driver or is unknown
    return db_url


def _engine_kwargs(db_url: str, echo: bool = False) -> dict:
    """Return database-specific engine configuration."""
    base = {"echo": echo}

    if "sqlite" in db_url:
        # SQLite: no connection pooling needed
        return {**base, "connect_args": {"check_same_thread": False}}

    return {
        **base,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
    }


def _safe_url(engine: AsyncEngine) -> str:
    url = str(engine.url)
    return url.split("@")[-1] if "@" in url else url


class Database:
    """Owned handle around an async engine and its session factory."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not connected — call connect() first")
        return self._engine

    async def connect(self) -> None:
        """Create the engine and verify the database is reachable."""
        db_url = _to_async_url(self.config.url)
        self._engine = create_async_engine(db_url, **_engine_kwargs(db_url, self.config.echo))
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("database_connected",
                    dialect=self._engine.dialect.name,
                    url=_safe_url(self._engine))

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional async session scope."""
        if self._session_factory is None:
            raise RuntimeError("Database is not connected — call connect() first")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def init_schema(self) -> None:
        """Create all tables. Idempotent."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_initialized",
                    dialect=self.engine.dialect.name,
                    tables=list(Base.metadata.tables.keys()))

    async def close(self) -> None:
        """Dispose engine connections. Call at shutdown."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("database_closed")
