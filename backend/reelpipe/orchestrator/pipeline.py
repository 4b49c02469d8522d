"""The reel pipeline: six steps wired onto the generic PipelineEngine.

Step order and the prior results each step reads:
0. script       (none)
1. narrations   (script)
2. images       (script)
3. videos       (script, narrations, images)
4. final_video  (videos)
5. thumbnail    (images)
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import TYPE_CHECKING, Optional

from reelpipe.errors import RunDeadlineExceeded
from reelpipe.orchestrator.engine import PipelineStep, new_execution_id
from reelpipe.pipeline.images import create_images
from reelpipe.pipeline.narration import create_narrations
from reelpipe.pipeline.publish import upload_final_video, upload_random_thumbnail
from reelpipe.pipeline.script import generate_script
from reelpipe.pipeline.videos import create_videos
from reelpipe.schemas.execution import Execution
from reelpipe.services.imagegen import ImageOptions
from reelpipe.services.probe import Resolution
from reelpipe.services.speech import SpeechOptions

if TYPE_CHECKING:
    from reelpipe.bootstrap import ReelServices

logger = logging.getLogger(__name__)

REEL_STEP_NAMES = ("script", "narrations", "images", "videos", "final_video", "thumbnail")


def build_reel_steps(services: "ReelServices") -> list[PipelineStep]:
    """Bind each step function to its collaborators from ``services``."""
    settings = services.settings
    concurrency = settings.pipeline.scene_concurrency
    public_bucket = settings.storage.public_bucket

    speech_options = SpeechOptions(
        stability=settings.speech.stability,
        similarity_boost=settings.speech.similarity_boost,
        style_exaggeration=settings.speech.style_exaggeration,
        model_id=settings.models.speech_model,
    )
    image_options = ImageOptions(
        aspect_ratio=settings.images.aspect_ratio,
        output_format=settings.images.output_format,
        count=settings.images.count,
    )
    clip_resolution = Resolution(settings.media.clip_width, settings.media.clip_height)

    runs = (
        partial(
            generate_script,
            llm=services.llm,
            temperature=settings.models.script_temperature,
            max_retries=settings.pipeline.retry_max_attempts,
        ),
        partial(
            create_narrations,
            speech=services.speech,
            blob_store=services.blob_store,
            options=speech_options,
            concurrency=concurrency,
        ),
        partial(
            create_images,
            images=services.images,
            blob_store=services.blob_store,
            options=image_options,
            concurrency=concurrency,
        ),
        partial(
            create_videos,
            composer=services.composer,
            resolution=clip_resolution,
            concurrency=concurrency,
        ),
        partial(upload_final_video, blob_store=services.blob_store, public_bucket=public_bucket),
        partial(
            upload_random_thumbnail,
            blob_store=services.blob_store,
            public_bucket=public_bucket,
            rng=services.rng,
        ),
    )
    return [PipelineStep(name, run) for name, run in zip(REEL_STEP_NAMES, runs)]


async def run_reel_pipeline(
    services: "ReelServices",
    deadline_seconds: Optional[float] = None,
) -> Execution:
    """Run one reel under the configured wall-clock deadline.

    Raises:
        PipelineFailed: A step failed; the failed state is persisted.
        RunDeadlineExceeded: The deadline expired mid-run. The in-flight
            step is abandoned with whatever status was last persisted.
    """
    if deadline_seconds is None:
        deadline_seconds = services.settings.pipeline.run_deadline_seconds

    execution_id = new_execution_id()
    steps = build_reel_steps(services)
    run = services.engine.run(steps, execution_id=execution_id)

    if not deadline_seconds:
        return await run

    try:
        return await asyncio.wait_for(run, timeout=deadline_seconds)
    except asyncio.TimeoutError as e:
        logger.error(f"Execution {execution_id}: exceeded {deadline_seconds:.0f}s deadline")
        last = await services.store.get(execution_id)
        raise RunDeadlineExceeded(last, deadline_seconds) from e
