"""Media Composition Engine: still image + narration to video, and clip merging.

Single-clip synthesis loops a still image for the length of its narration
with a centred slow zoom, muxes the audio and uploads the MP4. Merging
concatenates clips in the given order with the ffmpeg concat demuxer and
stream copy.

Every call stages its files in its own temporary directory, so concurrent
calls never share paths and all local files are removed on every exit path.
"""

import asyncio
import json
import logging
import subprocess
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Optional, Sequence

from reelpipe.config import MediaConfig
from reelpipe.errors import CompositionError
from reelpipe.services.blob_store import BlobStore
from reelpipe.services.probe import (
    CommandRunner,
    MediaProbe,
    Resolution,
    run_command,
    stderr_tail,
)
from reelpipe.services.zoompan import ZoomPanConfig, build_zoompan_filter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VideoOptions:
    """Overrides for a single composition; unset values are probed."""

    resolution: Optional[Resolution] = None
    duration: Optional[float] = None


@dataclass(frozen=True)
class VideoInput:
    image_key: str
    audio_key: str
    output_key: str
    options: VideoOptions = VideoOptions()


@dataclass(frozen=True)
class VideoCreationResult:
    output_key: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class MergeResult:
    output_key: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _basename(key: str) -> str:
    return PurePosixPath(key).name or "blob"


def concat_entry(path: Path) -> str:
    """One concat demuxer list line; single quotes in the path are escaped."""
    escaped = str(path.resolve()).replace("'", "'\\''")
    return f"file '{escaped}'\n"


class MediaComposer:
    """Builds videos from blobs using ffmpeg, reading and writing the blob store."""

    def __init__(
        self,
        blob_store: BlobStore,
        media: MediaConfig,
        tmp_dir: Optional[Path] = None,
        probe: Optional[MediaProbe] = None,
        runner: Optional[CommandRunner] = None,
    ):
        self.blob_store = blob_store
        self.media = media
        self.tmp_dir = Path(tmp_dir) if tmp_dir is not None else None
        self._runner = runner or run_command
        self.probe = probe or MediaProbe(media.ffprobe_path, runner=self._runner)

    def _workdir(self) -> tempfile.TemporaryDirectory:
        if self.tmp_dir is not None:
            self.tmp_dir.mkdir(parents=True, exist_ok=True)
        return tempfile.TemporaryDirectory(
            prefix="reelpipe-",
            dir=str(self.tmp_dir) if self.tmp_dir is not None else None,
        )

    async def _run_ffmpeg(self, cmd: list[str], what: str) -> None:
        try:
            await asyncio.to_thread(self._runner, cmd)
        except subprocess.CalledProcessError as e:
            tail = stderr_tail(e)
            logger.error(f"ffmpeg {what} failed: {tail}")
            raise CompositionError(f"ffmpeg {what} failed: {tail}") from e
        except FileNotFoundError as e:
            raise CompositionError(f"ffmpeg not found at '{self.media.ffmpeg_path}'") from e

    # ------------------------------------------------------------------
    # Command builders
    # ------------------------------------------------------------------
    def build_compose_command(
        self,
        image_path: Path,
        audio_path: Path,
        output_path: Path,
        zoom: ZoomPanConfig,
    ) -> list[str]:
        """ffmpeg arguments for one still-image clip with zoom and narration."""
        media = self.media
        return [
            media.ffmpeg_path,
            "-y",
            "-loop", "1",
            "-i", str(image_path),
            "-i", str(audio_path),
            "-filter_complex", f"[0:v]{build_zoompan_filter(zoom)}[v]",
            "-map", "[v]",
            "-map", "1:a",
            "-c:v", media.video_codec,
            "-pix_fmt", media.pixel_format,
            "-r", str(zoom.fps),
            "-t", f"{zoom.duration}",
            "-c:a", media.audio_codec,
            "-b:a", media.audio_bitrate,
            "-f", media.container,
            str(output_path),
        ]

    def build_merge_command(self, list_file: Path, output_path: Path) -> list[str]:
        """ffmpeg concat demuxer arguments; stream copy, no re-encode."""
        return [
            self.media.ffmpeg_path,
            "-y",
            "-f", "concat",
            "-safe", "0",  # allow absolute paths in the list file
            "-i", str(list_file),
            "-c", "copy",
            "-f", self.media.container,
            str(output_path),
        ]

    # ------------------------------------------------------------------
    # Single clip
    # ------------------------------------------------------------------
    async def compose(
        self,
        image_key: str,
        audio_key: str,
        output_key: str,
        options: Optional[VideoOptions] = None,
    ) -> str:
        """Create one clip and upload it to ``output_key``.

        Returns:
            ``output_key`` on success.

        Raises:
            ReelpipeError: Blob fetch, probing or encoding failed
                (BlobNotFoundError, ProbeError or CompositionError).
        """
        options = options or VideoOptions()
        start = time.monotonic()
        logger.info(f"Composing {output_key} from {image_key} + {audio_key}")

        with self._workdir() as workdir:
            work = Path(workdir)
            image = await self.blob_store.get(image_key)
            audio = await self.blob_store.get(audio_key)

            image_path = work / f"image-{_basename(image_key)}"
            audio_path = work / f"audio-{_basename(audio_key)}"
            output_path = work / f"output-{_basename(output_key)}"
            await asyncio.to_thread(image_path.write_bytes, image.body)
            await asyncio.to_thread(audio_path.write_bytes, audio.body)

            duration = options.duration or await self.probe.audio_duration(audio_path)
            resolution = options.resolution or await self.probe.image_resolution(image_path)

            try:
                zoom = ZoomPanConfig(
                    duration=duration,
                    width=resolution.width,
                    height=resolution.height,
                    fps=self.media.fps,
                    initial_zoom=self.media.initial_zoom,
                    final_zoom=self.media.final_zoom,
                    prescale_width=self.media.prescale_width,
                )
            except ValueError as e:
                raise CompositionError(str(e)) from e

            logger.debug(
                f"Zoom config for {output_key}: duration={duration:.3f}s "
                f"resolution={resolution} frames={zoom.frames}"
            )
            await self._run_ffmpeg(
                self.build_compose_command(image_path, audio_path, output_path, zoom),
                f"compose {output_key}",
            )

            if not output_path.exists():
                raise CompositionError(f"ffmpeg produced no output for {output_key}")
            body = await asyncio.to_thread(output_path.read_bytes)

            await self.blob_store.put(
                output_key,
                body,
                content_type="video/mp4",
                metadata={
                    "generated-by": "ffmpeg",
                    "source-image": image_key,
                    "source-audio": audio_key,
                    "duration": str(duration),
                    "resolution": str(resolution),
                },
            )

        logger.info(f"Composed {output_key} in {time.monotonic() - start:.2f}s")
        return output_key

    async def compose_batch(
        self,
        inputs: Sequence[VideoInput],
        concurrency: int = 1,
    ) -> list[VideoCreationResult]:
        """Compose every input, isolating failures per item.

        Results are returned in input order; one item's failure never stops
        the others.
        """
        semaphore = asyncio.Semaphore(max(1, concurrency))
        total = len(inputs)

        async def _one(index: int, item: VideoInput) -> VideoCreationResult:
            async with semaphore:
                try:
                    key = await self.compose(
                        item.image_key, item.audio_key, item.output_key, item.options
                    )
                    return VideoCreationResult(output_key=key)
                except Exception as e:
                    logger.warning(f"Video {index + 1}/{total} ({item.output_key}) failed: {e}")
                    return VideoCreationResult(output_key=item.output_key, error=str(e))

        results = await asyncio.gather(*(_one(i, item) for i, item in enumerate(inputs)))

        failed = sum(1 for r in results if r.error)
        logger.info(f"Batch composition: {total - failed} succeeded, {failed} failed")
        return list(results)

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------
    async def merge(self, video_keys: Sequence[str], output_key: str) -> MergeResult:
        """Concatenate clips in the given order and upload to ``output_key``.

        Never raises for merge failures; the error is returned in the result.
        """
        video_keys = list(video_keys)
        if not video_keys:
            return MergeResult(output_key=output_key, error="No videos to merge")

        start = time.monotonic()
        logger.info(f"Merging {len(video_keys)} clips into {output_key}")

        try:
            with self._workdir() as workdir:
                work = Path(workdir)
                clip_paths = []
                for index, key in enumerate(video_keys):
                    clip = await self.blob_store.get(key)
                    clip_path = work / f"video-{index}-{_basename(key)}"
                    await asyncio.to_thread(clip_path.write_bytes, clip.body)
                    clip_paths.append(clip_path)

                list_file = work / "concat_list.txt"
                output_path = work / f"merged-{_basename(output_key)}"
                list_file.write_text(
                    "".join(concat_entry(p) for p in clip_paths)
                )

                await self._run_ffmpeg(
                    self.build_merge_command(list_file, output_path),
                    f"merge {output_key}",
                )
                if not output_path.exists():
                    raise CompositionError(f"ffmpeg produced no output for {output_key}")
                body = await asyncio.to_thread(output_path.read_bytes)

                await self.blob_store.put(
                    output_key,
                    body,
                    content_type="video/mp4",
                    metadata={
                        "generated-by": "ffmpeg-merge",
                        "source-videos": json.dumps(video_keys),
                        "merge-date": datetime.now(timezone.utc).isoformat(),
                    },
                )
        except Exception as e:
            logger.error(f"Merge into {output_key} failed: {type(e).__name__}: {e}")
            return MergeResult(output_key=output_key, error=str(e) or type(e).__name__)

        logger.info(f"Merged {output_key} in {time.monotonic() - start:.2f}s")
        return MergeResult(output_key=output_key)
