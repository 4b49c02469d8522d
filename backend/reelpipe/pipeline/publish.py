"""Publishing steps: final video and thumbnail copies to the public bucket."""

import logging
import random
from pathlib import PurePosixPath
from typing import Optional

from reelpipe.errors import StepInputError
from reelpipe.schemas.results import (
    FinalVideoContent,
    FinalVideoRecord,
    ImagesRecord,
    StepResult,
    ThumbnailContent,
    ThumbnailRecord,
    VideosRecord,
    expect_result,
)
from reelpipe.services.blob_store import BlobStore

logger = logging.getLogger(__name__)

NO_MERGED_VIDEO = "No merged video available to upload"
NO_IMAGES = "No successful images available to choose from"


async def upload_final_video(
    prior: list[StepResult],
    execution_id: str,
    *,
    blob_store: BlobStore,
    public_bucket: str,
) -> FinalVideoRecord:
    videos = expect_result(prior, 3, VideosRecord)
    merged = videos.content.merged_video
    if merged.error or not merged.blob_key:
        raise StepInputError(NO_MERGED_VIDEO)

    final_key = f"{execution_id}-final.mp4"
    await blob_store.copy(merged.blob_key, final_key, public_bucket)
    logger.info(f"Execution {execution_id}: published {public_bucket}/{final_key}")

    return FinalVideoRecord(
        content=FinalVideoContent(
            original_video_key=merged.blob_key,
            final_video_key=final_key,
            bucket=public_bucket,
        )
    )


async def upload_random_thumbnail(
    prior: list[StepResult],
    execution_id: str,
    *,
    blob_store: BlobStore,
    public_bucket: str,
    rng: Optional[random.Random] = None,
) -> ThumbnailRecord:
    images = expect_result(prior, 2, ImagesRecord)
    pool = images.successful_keys()
    if not pool:
        raise StepInputError(NO_IMAGES)

    chosen = (rng or random).choice(pool)
    suffix = PurePosixPath(chosen).suffix or ".jpg"
    final_key = f"{execution_id}-thumbnail{suffix}"
    await blob_store.copy(chosen, final_key, public_bucket)
    logger.info(
        f"Execution {execution_id}: thumbnail {chosen} -> {public_bucket}/{final_key} "
        f"(pool of {len(pool)})"
    )

    return ThumbnailRecord(
        content=ThumbnailContent(
            original_image_key=chosen,
            final_image_key=final_key,
            bucket=public_bucket,
        )
    )
