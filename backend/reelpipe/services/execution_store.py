"""Execution Record Store: durable persistence of one Execution per run.

Each write is its own transaction so a concurrent reader always sees a state
consistent with some prefix of the run.
"""

import logging
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reelpipe.db.models import ExecutionRecord
from reelpipe.errors import ReelpipeError
from reelpipe.schemas.execution import Execution

logger = logging.getLogger(__name__)


class ExecutionStore:
    """CRUD over the ``executions`` table, keyed by execution id."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        page_size: int = 100,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self._session_factory = session_factory
        self.page_size = page_size

    @staticmethod
    def _apply(row: ExecutionRecord, execution: Execution) -> None:
        row.start_time = execution.start_time
        row.end_time = execution.end_time
        row.record = execution.model_dump(mode="json")

    async def create(self, execution: Execution) -> None:
        """Insert a new record.

        Raises:
            ReelpipeError: If a record with the same id already exists.
        """
        async with self._session_factory() as session:
            if await session.get(ExecutionRecord, execution.id) is not None:
                raise ReelpipeError(f"Execution {execution.id} already exists")
            row = ExecutionRecord(id=execution.id)
            self._apply(row, execution)
            session.add(row)
            await session.commit()

    async def get(self, execution_id: str) -> Optional[Execution]:
        async with self._session_factory() as session:
            row = await session.get(ExecutionRecord, execution_id)
            if row is None:
                return None
            return Execution.model_validate(row.record)

    async def update(self, execution: Execution) -> None:
        """Write the full document, creating the row if it is missing."""
        async with self._session_factory() as session:
            row = await session.get(ExecutionRecord, execution.id)
            if row is None:
                row = ExecutionRecord(id=execution.id)
                session.add(row)
            self._apply(row, execution)
            await session.commit()

    async def delete(self, execution_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(ExecutionRecord).where(ExecutionRecord.id == execution_id)
            )
            await session.commit()

    async def list_all(self) -> list[Execution]:
        """Return every stored Execution, ordered by id.

        Walks the table in keyset pages of ``page_size`` rows until a short
        page signals the end.
        """
        executions: list[Execution] = []
        cursor: Optional[str] = None
        pages = 0

        while True:
            stmt = select(ExecutionRecord).order_by(ExecutionRecord.id).limit(self.page_size)
            if cursor is not None:
                stmt = stmt.where(ExecutionRecord.id > cursor)

            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()

            pages += 1
            executions.extend(Execution.model_validate(row.record) for row in rows)
            if len(rows) < self.page_size:
                break
            cursor = rows[-1].id

        logger.debug(f"Listed {len(executions)} executions in {pages} page(s)")
        return executions
