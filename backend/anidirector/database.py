"""SQLAlchemy 2.0 async database engine and session management.

One `Database` object per install owns the engine and the session factory.
Callers hold a handle to it instead of importing a module-level engine.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from anidirector.config import Settings, get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class Database:
    """Async engine + session factory for the local project store."""

    def __init__(self, url: str | None = None, *, echo: bool | None = None) -> None:
        if url is None or echo is None:
            settings = get_settings()
            url = url or settings.DATABASE_URL
            echo = settings.DEBUG if echo is None else echo
        self.url = url
        self.engine: AsyncEngine = create_async_engine(self.url, echo=echo)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.DATABASE_URL, echo=settings.DEBUG)

    def session(self) -> AsyncSession:
        """Open a new session; use as `async with db.session() as s`."""
        return self.session_factory()

    async def init(self) -> None:
        """Create all tables defined by Base metadata.

        Called once at startup. Safe to call on an existing database.
        """
        import anidirector.models  # noqa: F401 registers the models

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database ready: %s", self.engine.url.render_as_string(hide_password=True))

    async def close(self) -> None:
        """Dispose of the engine connection pool.

        Called at shutdown.
        """
        await self.engine.dispose()
