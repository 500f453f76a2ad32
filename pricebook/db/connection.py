"""Database connection and session management for Pricebook.

Provides an explicit async SQLAlchemy handle. One ``Database`` is built per
process (web app lifespan, arq worker startup, CLI command) and passed to the
job store and processor; nothing reaches for a module-level engine.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from pricebook.config import DBConfig
from pricebook.db.models import Base


class Database:
    """Async engine plus session factory for one process."""

    def __init__(self, config: DBConfig):
        self.config = config

        # Build engine kwargs
        engine_kwargs = {"echo": config.echo}

        # SQLite doesn't support connection pooling parameters
        if not self.is_sqlite:
            engine_kwargs.update({
                "pool_size": config.pool_size,
                "max_overflow": config.pool_max_overflow,
                "pool_timeout": config.pool_timeout,
                "pool_pre_ping": True,  # Verify connections before using
                "pool_recycle": 3600,  # Recycle connections after 1 hour
            })

        self.engine: AsyncEngine = create_async_engine(config.url, **engine_kwargs)

        if self.is_sqlite:
            # Foreign keys are off by default in SQLite
            @event.listens_for(self.engine.sync_engine, "connect")
            def _enable_foreign_keys(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        self._session_factory = sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,  # Don't expire objects after commit
        )

    @classmethod
    def from_url(cls, url: str, **kwargs) -> Database:
        return cls(DBConfig(url=url, **kwargs))

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.config.url.lower()

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get async database session (context manager).

        Commits on clean exit, rolls back and re-raises on error.

        Usage:
            async with database.session() as session:
                result = await session.execute(query)
        """
        session = self._session_factory()

        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def init_db(self, drop: bool = False) -> None:
        """Create all tables.

        Note: For production, use migrations instead.
        This is a convenience function for development/testing.
        """
        async with self.engine.begin() as conn:
            if drop:
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Dispose the engine and its pooled connections."""
        await self.engine.dispose()
