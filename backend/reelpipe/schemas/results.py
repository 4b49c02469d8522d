"""Step Result payloads passed between pipeline steps.

Each step produces exactly one record. Records form a tagged union on the
``type`` field so an Execution document can be stored and reloaded without
losing which step produced which payload. Steps downcast only the prior
results they declare they need via expect_result().
"""

import time
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel, Field

from reelpipe.errors import StepInputError


def record_id(prefix: str) -> str:
    """Build a record id like ``videos-1718000000000``."""
    return f"{prefix}-{int(time.time() * 1000)}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Script
# ---------------------------------------------------------------------------
class ScriptScene(BaseModel):
    """One narrative unit of the generated script."""

    day: Optional[int] = None
    event: str = Field(description="Narrative line describing what happens in the scene")
    image_prompt: str = Field(description="Prompt for the scene's still image")
    voice_narration: str = Field(description="Text read by the narrator over the scene")


class ScriptRecord(BaseModel):
    type: Literal["reel-episodes"] = "reel-episodes"
    id: str = Field(default_factory=lambda: record_id("reel"))
    created_at: datetime = Field(default_factory=_now)
    content: list[ScriptScene]


# ---------------------------------------------------------------------------
# Narrations
# ---------------------------------------------------------------------------
class NarrationResult(BaseModel):
    scene_index: int
    blob_key: Optional[str] = None
    voice_narration: str = ""
    error: Optional[str] = None


class NarrationsContent(BaseModel):
    narrations: list[NarrationResult]
    script_id: str
    success_count: int = 0
    failure_count: int = 0


class NarrationsRecord(BaseModel):
    type: Literal["voice-narrations"] = "voice-narrations"
    id: str = Field(default_factory=lambda: record_id("narrations"))
    created_at: datetime = Field(default_factory=_now)
    content: NarrationsContent

    def for_scene(self, scene_index: int) -> Optional[NarrationResult]:
        for narration in self.content.narrations:
            if narration.scene_index == scene_index:
                return narration
        return None


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------
class ImageResult(BaseModel):
    scene_index: int
    blob_keys: list[str] = Field(default_factory=list)
    image_prompt: str = ""
    error: Optional[str] = None


class ImagesContent(BaseModel):
    images: list[ImageResult]
    script_id: str
    success_count: int = 0
    failure_count: int = 0


class ImagesRecord(BaseModel):
    type: Literal["images"] = "images"
    id: str = Field(default_factory=lambda: record_id("images"))
    created_at: datetime = Field(default_factory=_now)
    content: ImagesContent

    def for_scene(self, scene_index: int) -> Optional[ImageResult]:
        for image in self.content.images:
            if image.scene_index == scene_index:
                return image
        return None

    def successful_keys(self) -> list[str]:
        """Image keys of scenes that produced images without error."""
        return [
            key
            for image in self.content.images
            if not image.error and image.blob_keys
            for key in image.blob_keys
        ]


# ---------------------------------------------------------------------------
# Videos
# ---------------------------------------------------------------------------
class VideoResult(BaseModel):
    scene_index: int
    blob_key: Optional[str] = None
    error: Optional[str] = None


class MergedVideo(BaseModel):
    blob_key: Optional[str] = None
    error: Optional[str] = None


class VideosContent(BaseModel):
    videos: list[VideoResult]
    merged_video: MergedVideo
    script_id: str
    success_count: int = 0
    failure_count: int = 0


class VideosRecord(BaseModel):
    type: Literal["videos"] = "videos"
    id: str = Field(default_factory=lambda: record_id("videos"))
    created_at: datetime = Field(default_factory=_now)
    content: VideosContent


# ---------------------------------------------------------------------------
# Published outputs
# ---------------------------------------------------------------------------
class FinalVideoContent(BaseModel):
    original_video_key: str
    final_video_key: str
    bucket: str


class FinalVideoRecord(BaseModel):
    type: Literal["final-video"] = "final-video"
    id: str = Field(default_factory=lambda: record_id("final-video"))
    created_at: datetime = Field(default_factory=_now)
    content: FinalVideoContent


class ThumbnailContent(BaseModel):
    original_image_key: str
    final_image_key: str
    bucket: str


class ThumbnailRecord(BaseModel):
    type: Literal["thumbnail"] = "thumbnail"
    id: str = Field(default_factory=lambda: record_id("thumbnail"))
    created_at: datetime = Field(default_factory=_now)
    content: ThumbnailContent


StepResult = Annotated[
    Union[
        ScriptRecord,
        NarrationsRecord,
        ImagesRecord,
        VideosRecord,
        FinalVideoRecord,
        ThumbnailRecord,
    ],
    Field(discriminator="type"),
]

STEP_RESULT_TYPES = (
    ScriptRecord,
    NarrationsRecord,
    ImagesRecord,
    VideosRecord,
    FinalVideoRecord,
    ThumbnailRecord,
)

R = TypeVar("R", bound=BaseModel)


def expect_result(prior: Sequence[BaseModel], index: int, kind: Type[R]) -> R:
    """Return ``prior[index]`` as ``kind`` or raise StepInputError."""
    if index >= len(prior):
        raise StepInputError(
            f"Expected {kind.__name__} at prior result {index}, "
            f"only {len(prior)} prior result(s) available"
        )
    result = prior[index]
    if not isinstance(result, kind):
        raise StepInputError(
            f"Expected {kind.__name__} at prior result {index}, got {type(result).__name__}"
        )
    return result
