"""
Database Initialization

Builds the async SQLAlchemy engine and session factory, and creates the
products, users and transactions tables.

SQLite connections get WAL mode and a busy timeout so concurrent callbacks
wait for the write lock instead of failing.
"""
import asyncio
import logging
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .models import Base

logger = logging.getLogger(__name__)


def _apply_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")  # 30 second timeout
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(database_url: str) -> AsyncEngine:
    """
    Create async engine for the given database URL.

    Args:
        database_url: SQLAlchemy URL, e.g. sqlite+aiosqlite:///./click_merchant.db

    Returns:
        AsyncEngine with SQLite pragmas registered when applicable
    """
    is_sqlite = database_url.startswith("sqlite")
    connect_args = {"timeout": 30, "check_same_thread": False} if is_sqlite else {}

    engine = create_async_engine(
        database_url,
        echo=False,
        connect_args=connect_args,
        pool_pre_ping=True,
    )

    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _apply_sqlite_pragmas)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async session factory bound to the engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


async def initialize_database(engine: AsyncEngine) -> None:
    """
    Create all tables if they do not exist yet.

    Called during FastAPI startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def _init_from_settings(database_url: Optional[str] = None) -> None:
    from ..config import settings

    engine = create_engine(database_url or settings.database_url)
    try:
        await initialize_database(engine)
    finally:
        await engine.dispose()


def main():
    """CLI entry point for initializing database."""
    logging.basicConfig(level=logging.INFO)
    asyncio.run(_init_from_settings())


if __name__ == "__main__":
    main()
