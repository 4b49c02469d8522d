"""Fixed-time daily scheduler for unattended pipeline runs.

Runs the reel pipeline at the configured UTC hours (00:00, 08:00 and 16:00
by default). A failed run is logged and the loop waits for the next slot.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Sequence

from reelpipe.config import ScheduleConfig
from reelpipe.errors import PipelineFailed, RunDeadlineExceeded
from reelpipe.orchestrator.pipeline import run_reel_pipeline

if TYPE_CHECKING:
    from reelpipe.bootstrap import ReelServices
    from reelpipe.schemas.execution import Execution

logger = logging.getLogger(__name__)


def next_run_after(now: datetime, hours: Sequence[int], minute: int = 0) -> datetime:
    """Return the first scheduled slot strictly after ``now`` (UTC)."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)

    for day_offset in (0, 1):
        day = now + timedelta(days=day_offset)
        for hour in sorted(hours):
            slot = day.replace(hour=hour, minute=minute, second=0, microsecond=0)
            if slot > now:
                return slot
    raise ValueError("hours must not be empty")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def run_schedule(
    services: "ReelServices",
    schedule: ScheduleConfig,
    stop_event: asyncio.Event,
    run: Optional[Callable[["ReelServices"], Awaitable["Execution"]]] = None,
    clock: Callable[[], datetime] = _utcnow,
) -> None:
    """Sleep until each slot and run the pipeline, until ``stop_event`` is set."""
    run = run or run_reel_pipeline
    logger.info(
        f"Scheduler started: daily at {', '.join(f'{h:02d}:{schedule.minute:02d}' for h in schedule.hours_utc)} UTC"
    )

    while not stop_event.is_set():
        now = clock()
        slot = next_run_after(now, schedule.hours_utc, schedule.minute)
        delay = max(0.0, (slot - now).total_seconds())
        logger.info(f"Next scheduled run at {slot.isoformat()} (in {delay:.0f}s)")

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
            break
        except asyncio.TimeoutError:
            pass

        try:
            execution = await run(services)
            logger.info(f"Scheduled execution {execution.id} completed")
        except PipelineFailed as e:
            logger.error(f"Scheduled execution {e.execution.id} failed: {e}")
        except RunDeadlineExceeded as e:
            execution_id = e.execution.id if e.execution else "unknown"
            logger.error(f"Scheduled execution {execution_id}: {e}")
        except Exception as e:
            logger.error(f"Scheduled run crashed: {type(e).__name__}: {e}", exc_info=True)

    logger.info("Scheduler stopped")
