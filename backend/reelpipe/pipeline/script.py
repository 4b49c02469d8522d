"""Reel script generation.

Asks the configured text model for a short vertical-video story broken into
scenes, each with a narrative line, an image prompt and a narration line,
then validates the reply into a ScriptRecord. Any failure is step-fatal.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError

from reelpipe.errors import AdapterError
from reelpipe.schemas.results import ScriptRecord, ScriptScene, StepResult
from reelpipe.services.llm import LLMAdapter, strip_code_fences

logger = logging.getLogger(__name__)

REEL_PROMPT = """\
Write the script for a vertical short video (a reel) told as a sequence of \
{scene_count} daily episodes of one continuous, surprising story.

For every episode return an object with these fields:
- "day": the day number, starting at 1
- "event": one sentence describing what happens
- "image_prompt": a detailed, photorealistic prompt for a single vertical \
still image illustrating the event (subject, setting, lighting, camera)
- "voice_narration": one or two short sentences the narrator reads aloud

Respond with a JSON array of the episode objects only, no commentary.
"""


def parse_script(raw: str) -> list[ScriptScene]:
    """Parse the model reply into scenes.

    Accepts a bare JSON array or an object wrapping it under ``scenes`` or
    ``episodes``; markdown code fences are stripped first.

    Raises:
        ValueError: The reply is not valid JSON or not a non-empty scene list.
    """
    cleaned = strip_code_fences(raw)
    try:
        data: Any = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ValueError(f"Script reply is not valid JSON: {e}") from e

    if isinstance(data, dict):
        for field in ("scenes", "episodes"):
            if isinstance(data.get(field), list):
                data = data[field]
                break
    if not isinstance(data, list):
        raise ValueError(f"Script reply must be a list of scenes, got {type(data).__name__}")
    if not data:
        raise ValueError("Script reply contains no scenes")

    try:
        return [ScriptScene.model_validate(item) for item in data]
    except ValidationError as e:
        raise ValueError(f"Script scene failed validation: {e}") from e


async def generate_script(
    prior: list[StepResult],
    execution_id: str,
    *,
    llm: LLMAdapter,
    temperature: float = 0.9,
    scene_count: int = 5,
    max_retries: int = 3,
) -> ScriptRecord:
    logger.info(f"Execution {execution_id}: generating reel script with {llm.model_id}")

    outcome = await llm.text_completion(
        REEL_PROMPT.format(scene_count=scene_count),
        temperature=temperature,
        max_retries=max_retries,
    )
    if not outcome.ok:
        raise AdapterError(outcome.error)

    scenes = parse_script(outcome.value)
    record = ScriptRecord(content=scenes)
    logger.info(f"Execution {execution_id}: script {record.id} has {len(scenes)} scenes")
    return record
