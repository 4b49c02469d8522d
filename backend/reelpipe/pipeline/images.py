"""Scene image generation and upload to the blob store."""

import logging
from datetime import datetime, timezone

from reelpipe.errors import AdapterError
from reelpipe.pipeline.scenes import episode_number, map_scenes
from reelpipe.schemas.results import (
    ImageResult,
    ImagesContent,
    ImagesRecord,
    ScriptRecord,
    ScriptScene,
    StepResult,
    expect_result,
)
from reelpipe.services.blob_store import BlobStore
from reelpipe.services.imagegen import ImageOptions, ReplicateImageAdapter

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}


def image_key(
    execution_id: str, script_id: str, scene_index: int, output_index: int, output_format: str
) -> str:
    return (
        f"{execution_id}/images/{script_id}/"
        f"episode-{episode_number(scene_index)}-{output_index}.{output_format}"
    )


async def create_images(
    prior: list[StepResult],
    execution_id: str,
    *,
    images: ReplicateImageAdapter,
    blob_store: BlobStore,
    options: ImageOptions,
    concurrency: int = 1,
) -> ImagesRecord:
    script = expect_result(prior, 0, ScriptRecord)
    total = len(script.content)
    content_type = CONTENT_TYPES.get(options.output_format.lower(), "application/octet-stream")
    logger.info(f"Execution {execution_id}: generating images for {total} scenes")

    async def _generate(index: int, scene: ScriptScene) -> ImageResult:
        outcome = await images.text_to_image(scene.image_prompt, options)
        if not outcome.ok:
            raise AdapterError(outcome.error)

        keys = []
        for output_index, url in enumerate(outcome.value):
            data = (await images.download(url)).unwrap()
            key = image_key(execution_id, script.id, index, output_index, options.output_format)
            await blob_store.put(
                key,
                data,
                content_type=content_type,
                metadata={
                    "generated-by": "replicate",
                    "model": images.model,
                    "generation-date": datetime.now(timezone.utc).isoformat(),
                },
            )
            keys.append(key)

        logger.debug(f"Scene {episode_number(index)}/{total}: stored {len(keys)} image(s)")
        return ImageResult(scene_index=index, blob_keys=keys, image_prompt=scene.image_prompt)

    def _failed(index: int, scene: ScriptScene, exc: Exception) -> ImageResult:
        return ImageResult(
            scene_index=index,
            image_prompt=scene.image_prompt,
            error=str(exc) or type(exc).__name__,
        )

    results = await map_scenes(script.content, _generate, _failed, concurrency)

    failures = sum(1 for r in results if r.error)
    logger.info(
        f"Execution {execution_id}: images done, "
        f"{total - failures} succeeded, {failures} failed"
    )
    return ImagesRecord(
        content=ImagesContent(
            images=results,
            script_id=script.id,
            success_count=total - failures,
            failure_count=failures,
        )
    )
