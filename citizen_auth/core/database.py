"""Async SQLAlchemy engine, session factory and FastAPI session dependency."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from citizen_auth.core.config import settings
from citizen_auth.core.logging import get_logger

logger = get_logger("database")


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Hand transaction control to SQLAlchemy so SAVEPOINT works on SQLite.

    The sqlite3 driver otherwise issues its own BEGIN lazily and breaks
    nested transactions.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str) -> AsyncEngine:
    """Create the async engine.

    Pool sizing (DB_POOL_SIZE, DB_MAX_OVERFLOW, DB_POOL_TIMEOUT,
    DB_POOL_RECYCLE) only applies to PostgreSQL; SQLite keeps its own pool.
    """
    options: dict[str, Any] = {"echo": settings.debug and settings.log_level == "DEBUG"}
    if make_url(database_url).get_backend_name() == "sqlite":
        engine = create_async_engine(database_url, **options)
        enable_sqlite_savepoints(engine)
        return engine

    return create_async_engine(
        database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=True,
        **options,
    )


engine = build_engine(str(settings.database_url))

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Unit of work outside a request: commit on success, roll back on any error.

    BaseException is included so a cancelled background task still rolls back.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session dependency."""
    async with session_scope() as session:
        yield session


async def check_db_connection() -> bool:
    """Run ``SELECT 1`` on a fresh connection; False when the database is unreachable."""
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Database connection check failed: {e}")
        return False
    return True
