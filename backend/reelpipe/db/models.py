"""SQLAlchemy 2.0 ORM models for the Execution Record Store."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class ExecutionRecord(Base):
    """One row per pipeline run, keyed by execution id.

    ``record`` holds the full Execution document exactly as the API returns
    it; start/end times are duplicated into columns for querying.
    """
    __tablename__ = "executions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    start_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    record: Mapped[dict] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now()
    )
