"""Async engine, session factory and schema bootstrap."""

import os

from sqlalchemy import event
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from tasteloop.config import config
from tasteloop.logging import get_logger

logger = get_logger(__name__)

# Feedback writes and background refinement may hit SQLite at the same time
SQLITE_BUSY_TIMEOUT_MS = 5000

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


class Base(DeclarativeBase):
    pass


def database_url() -> str:
    """DATABASE_URL from the environment wins over the loaded config.

    Lets migrations and tests point at another database after import.
    """
    return os.getenv("DATABASE_URL") or config.database_url


def _configure_sqlite(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
        cursor.close()


def get_engine() -> AsyncEngine:
    """Get or create the process-wide engine."""
    global _engine

    if _engine is None:
        url = database_url()
        logger.info(f"Creating database engine for {make_url(url).render_as_string(hide_password=True)}")
        _engine = create_async_engine(
            url,
            echo=config.log_level == "DEBUG",
            pool_pre_ping=True,
        )
        if _engine.dialect.name == "sqlite":
            _configure_sqlite(_engine)

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )

    return _session_factory


async def create_tables() -> None:
    """Create the feedback, history, preference and event tables if missing."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def close_engine() -> None:
    """Dispose pooled connections and forget the engine."""
    global _engine, _session_factory

    if _engine is None:
        return

    logger.info("Closing database engine")
    await _engine.dispose()
    _engine = None
    _session_factory = None
