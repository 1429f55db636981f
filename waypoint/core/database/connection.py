"""Async engine and session management."""

import logging
from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from waypoint.core.database.base import Base
from waypoint.utils.config import get_settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_engine(url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """Create the process-wide engine and session factory.

    Called lazily on first use with the configured database URL. Tests call
    it directly with a throwaway SQLite file.
    """
    global _engine, _session_factory

    settings = get_settings()
    url = url or settings.database.url
    echo = settings.database.echo if echo is None else echo

    connect_args = {}
    if url.startswith("sqlite"):
        # Concurrent writers wait on the database lock instead of failing
        connect_args["timeout"] = 30

    _engine = create_async_engine(url, echo=echo, connect_args=connect_args)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    logger.info("Database engine initialised (%s)", _engine.url.render_as_string(hide_password=True))
    return _engine


def get_engine() -> AsyncEngine:
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        init_engine()
    return _session_factory


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session."""
    async with get_session_factory()() as session:
        yield session


async def init_database() -> None:
    """Create all tables that do not exist yet."""
    # Register every model on the metadata before create_all
    import waypoint.core.models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
