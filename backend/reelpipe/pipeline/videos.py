"""Per-scene video synthesis and merge into one reel.

Scenes missing a narration or an image get a scene-level error. The
remaining scenes are composed as a batch with per-item isolation, and the
successful clips are merged in scene order.
"""

import logging

from reelpipe.pipeline.scenes import episode_number
from reelpipe.schemas.results import (
    ImagesRecord,
    MergedVideo,
    NarrationsRecord,
    ScriptRecord,
    StepResult,
    VideoResult,
    VideosContent,
    VideosRecord,
    expect_result,
)
from reelpipe.services.composer import MediaComposer, VideoInput, VideoOptions
from reelpipe.services.probe import Resolution

logger = logging.getLogger(__name__)

MISSING_ASSETS = "Missing required assets"
NO_VIDEOS_TO_MERGE = "No successful videos to merge"


def video_key(execution_id: str, script_id: str, scene_index: int) -> str:
    return f"{execution_id}/videos/{script_id}/episode-{episode_number(scene_index)}.mp4"


def merged_video_key(execution_id: str, script_id: str) -> str:
    return f"{execution_id}/videos/{script_id}/merged.mp4"


async def create_videos(
    prior: list[StepResult],
    execution_id: str,
    *,
    composer: MediaComposer,
    resolution: Resolution,
    concurrency: int = 1,
) -> VideosRecord:
    script = expect_result(prior, 0, ScriptRecord)
    narrations = expect_result(prior, 1, NarrationsRecord)
    images = expect_result(prior, 2, ImagesRecord)
    total = len(script.content)
    logger.info(f"Execution {execution_id}: creating videos for {total} scenes")

    videos: list[VideoResult] = []
    pending: list[tuple[int, VideoInput]] = []

    for index in range(total):
        narration = narrations.for_scene(index)
        image = images.for_scene(index)
        has_narration = narration is not None and not narration.error and narration.blob_key
        has_image = image is not None and not image.error and image.blob_keys

        if not (has_narration and has_image):
            logger.warning(f"Scene {episode_number(index)}/{total}: {MISSING_ASSETS}")
            videos.append(VideoResult(scene_index=index, error=MISSING_ASSETS))
            continue

        output_key = video_key(execution_id, script.id, index)
        pending.append((
            len(videos),
            VideoInput(
                image_key=image.blob_keys[0],
                audio_key=narration.blob_key,
                output_key=output_key,
                options=VideoOptions(resolution=resolution),
            ),
        ))
        videos.append(VideoResult(scene_index=index, blob_key=output_key))

    batch = await composer.compose_batch([item for _, item in pending], concurrency)
    for (slot, _), result in zip(pending, batch):
        if result.error:
            videos[slot] = VideoResult(scene_index=videos[slot].scene_index, error=result.error)

    successful = [v.blob_key for v in videos if not v.error and v.blob_key]
    if successful:
        merge = await composer.merge(successful, merged_video_key(execution_id, script.id))
        merged = MergedVideo(
            blob_key=merge.output_key if merge.ok else None,
            error=merge.error,
        )
    else:
        merged = MergedVideo(error=NO_VIDEOS_TO_MERGE)

    failures = sum(1 for v in videos if v.error)
    logger.info(
        f"Execution {execution_id}: videos done, {total - failures} succeeded, "
        f"{failures} failed, merged={'ok' if not merged.error else merged.error}"
    )
    return VideosRecord(
        content=VideosContent(
            videos=videos,
            merged_video=merged,
            script_id=script.id,
            success_count=total - failures,
            failure_count=failures,
        )
    )
