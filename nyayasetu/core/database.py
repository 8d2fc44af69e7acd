"""
NyayaSetu Database Module
Async SQLAlchemy with SQLite (dev) / PostgreSQL (prod) support.

Grievances, documents, disbursements and fund allocations all point at
each other by id, so SQLite connections are opened with foreign key
enforcement switched on to match PostgreSQL.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool, AsyncAdaptedQueuePool

from nyayasetu.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


# Engine and session factory (lazy initialization)
_engine = None
_async_session_factory = None


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _pool_config(settings: Settings) -> dict:
    """
    SQLite gets a NullPool, one connection per session. Anything else gets
    a queue pool sized from settings, with pre-ping so a restarted
    PostgreSQL does not hand out dead connections.
    """
    if is_sqlite(settings.database_url):
        return {
            "poolclass": NullPool,
            "connect_args": {"check_same_thread": False},
        }
    return {
        "poolclass": AsyncAdaptedQueuePool,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_recycle": settings.db_pool_recycle,
        "pool_pre_ping": True,
    }


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine() -> AsyncEngine:
    """Get or create the async engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            echo=settings.db_echo,
            **_pool_config(settings),
        )
        if is_sqlite(settings.database_url):
            event.listen(_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        logger.info("Database engine created (%s)", _engine.url.render_as_string(hide_password=True))
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _async_session_factory


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    One unit of work: commits when the block exits normally, rolls back
    when it raises. Used directly by startup tasks and tests.
    """
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one unit of work per request."""
    async with get_db_session() as session:
        yield session


async def ping_db() -> bool:
    """True when the database answers a trivial query."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database ping failed: %s", e)
        return False
    return True


async def init_db() -> None:
    """Create all tables. Called on startup."""
    from nyayasetu.models import models  # noqa: F401  registers the tables

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database ready with %d tables", len(Base.metadata.tables))


async def close_db() -> None:
    """Dispose of the engine. Called on shutdown."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
