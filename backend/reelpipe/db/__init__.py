"""
Database module for reelpipe.

Provides async SQLAlchemy engine factories, session management,
and schema initialization for the Execution Record Store.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from reelpipe.db.engine import create_engine, create_session_factory, shutdown
from reelpipe.db.models import Base, ExecutionRecord

logger = logging.getLogger(__name__)


async def init_database(engine: AsyncEngine) -> None:
    """Initialize database schema on first run."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready (%s)", engine.url.render_as_string(hide_password=True))


__all__ = [
    "Base",
    "ExecutionRecord",
    "create_engine",
    "create_session_factory",
    "init_database",
    "shutdown",
]
