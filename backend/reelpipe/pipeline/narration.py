"""Narration synthesis: one MP3 per script scene.

Scene-local failures are recorded in the NarrationsRecord and do not fail
the step.
"""

import logging
from datetime import datetime, timezone

from reelpipe.schemas.results import (
    NarrationResult,
    NarrationsContent,
    NarrationsRecord,
    ScriptRecord,
    ScriptScene,
    StepResult,
    expect_result,
)
from reelpipe.pipeline.scenes import episode_number, map_scenes
from reelpipe.services.blob_store import BlobStore
from reelpipe.services.speech import ElevenLabsSpeechAdapter, SpeechOptions

logger = logging.getLogger(__name__)


def narration_key(execution_id: str, script_id: str, scene_index: int) -> str:
    return f"{execution_id}/narrations/{script_id}/episode-{episode_number(scene_index)}.mp3"


async def create_narrations(
    prior: list[StepResult],
    execution_id: str,
    *,
    speech: ElevenLabsSpeechAdapter,
    blob_store: BlobStore,
    options: SpeechOptions,
    concurrency: int = 1,
) -> NarrationsRecord:
    script = expect_result(prior, 0, ScriptRecord)
    total = len(script.content)
    logger.info(f"Execution {execution_id}: synthesizing {total} narrations")

    async def _narrate(index: int, scene: ScriptScene) -> NarrationResult:
        outcome = await speech.text_to_speech(scene.voice_narration, options)
        if not outcome.ok:
            logger.warning(f"Scene {episode_number(index)}/{total}: narration failed: {outcome.error}")
            return NarrationResult(
                scene_index=index,
                voice_narration=scene.voice_narration,
                error=outcome.error,
            )

        key = narration_key(execution_id, script.id, index)
        await blob_store.put(
            key,
            outcome.value,
            content_type="audio/mpeg",
            metadata={
                "generated-by": "elevenlabs",
                "generation-date": datetime.now(timezone.utc).isoformat(),
            },
        )
        return NarrationResult(
            scene_index=index,
            blob_key=key,
            voice_narration=scene.voice_narration,
        )

    def _failed(index: int, scene: ScriptScene, exc: Exception) -> NarrationResult:
        return NarrationResult(
            scene_index=index,
            voice_narration=scene.voice_narration,
            error=str(exc) or type(exc).__name__,
        )

    narrations = await map_scenes(script.content, _narrate, _failed, concurrency)

    failures = sum(1 for n in narrations if n.error)
    logger.info(
        f"Execution {execution_id}: narrations done, "
        f"{total - failures} succeeded, {failures} failed"
    )
    return NarrationsRecord(
        content=NarrationsContent(
            narrations=narrations,
            script_id=script.id,
            success_count=total - failures,
            failure_count=failures,
        )
    )
