"""
Database engine configuration for reelpipe.

Provides async SQLAlchemy engine factories with SQLite WAL mode and
crash-safe PRAGMA configuration. Engines are built from explicit
configuration at process start, never at import time.
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def configure_sqlite_pragmas(dbapi_conn, connection_record):
    """
    Configure SQLite PRAGMA settings for crash safety and performance.

    - WAL mode: readers see a consistent prefix of a run while it is written
    - FULL synchronous: every status transition is durable before the next step
    - Busy timeout: Wait up to 5s for locks
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=FULL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, registering SQLite pragmas when applicable."""
    engine = create_async_engine(database_url, echo=echo)

    if engine.dialect.name == "sqlite":
        # CRITICAL: Use engine.sync_engine for aiosqlite compatibility
        event.listens_for(engine.sync_engine, "connect")(configure_sqlite_pragmas)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to ``engine``.

    expire_on_commit=False keeps loaded rows usable after commit in async code.
    """
    return async_sessionmaker(
        engine,
        expire_on_commit=False,
        class_=AsyncSession,
    )


async def shutdown(engine: AsyncEngine) -> None:
    """Dispose of engine and close all connections."""
    await engine.dispose()
