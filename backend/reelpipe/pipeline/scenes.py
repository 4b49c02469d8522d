"""Per-scene fan-out shared by the narration, image and video steps."""

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def map_scenes(
    items: Sequence[T],
    worker: Callable[[int, T], Awaitable[R]],
    on_error: Callable[[int, T, Exception], R],
    concurrency: int = 1,
) -> list[R]:
    """Run ``worker`` for every scene and return results in scene order.

    At most ``concurrency`` workers run at once. A worker that raises is
    turned into a result by ``on_error``; its siblings keep running.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _run(index: int, item: T) -> R:
        async with semaphore:
            try:
                return await worker(index, item)
            except Exception as e:
                logger.warning(f"Scene {index + 1}: {type(e).__name__}: {e}")
                return on_error(index, item, e)

    return list(await asyncio.gather(*(_run(i, item) for i, item in enumerate(items))))


def episode_number(scene_index: int) -> int:
    """Scenes are numbered from 1 in blob keys."""
    return scene_index + 1
