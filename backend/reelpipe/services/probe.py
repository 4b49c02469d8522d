"""ffprobe wrapper for audio duration and image resolution.

Also hosts the shared subprocess runner used for ffmpeg/ffprobe calls. The
runner is synchronous and is always executed through asyncio.to_thread.
"""

import asyncio
import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from reelpipe.errors import ProbeError

logger = logging.getLogger(__name__)

CommandRunner = Callable[[list[str]], subprocess.CompletedProcess]


def run_command(cmd: list[str]) -> subprocess.CompletedProcess:
    """Run an external binary, raising CalledProcessError on non-zero exit."""
    return subprocess.run(cmd, check=True, capture_output=True)


def stderr_tail(error: subprocess.CalledProcessError, limit: int = 500) -> str:
    """Last ``limit`` characters of a failed process's stderr."""
    stderr = error.stderr
    if isinstance(stderr, bytes):
        stderr = stderr.decode(errors="replace")
    stderr = (stderr or "").strip()
    if not stderr:
        return "No error output"
    return stderr[-limit:]


@dataclass(frozen=True)
class Resolution:
    width: int
    height: int

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


class MediaProbe:
    """Reads container metadata with ffprobe."""

    def __init__(self, ffprobe_path: str = "ffprobe", runner: Optional[CommandRunner] = None):
        self.ffprobe_path = ffprobe_path
        self._runner = runner or run_command

    async def probe(self, path: Path) -> dict:
        """Return ffprobe's JSON description of ``path`` (format and streams).

        Raises:
            ProbeError: ffprobe is missing, failed, or printed unparseable output.
        """
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        try:
            completed = await asyncio.to_thread(self._runner, cmd)
        except subprocess.CalledProcessError as e:
            raise ProbeError(f"ffprobe failed for {Path(path).name}: {stderr_tail(e)}") from e
        except FileNotFoundError as e:
            raise ProbeError(f"ffprobe not found at '{self.ffprobe_path}'") from e

        stdout = completed.stdout
        if isinstance(stdout, bytes):
            stdout = stdout.decode(errors="replace")
        try:
            return json.loads(stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProbeError(f"ffprobe returned invalid JSON for {Path(path).name}") from e

    async def audio_duration(self, path: Path) -> float:
        """Duration in seconds from the container's format section."""
        data = await self.probe(path)
        raw = (data.get("format") or {}).get("duration")
        try:
            duration = float(raw)
        except (TypeError, ValueError) as e:
            raise ProbeError(f"Could not determine duration of {Path(path).name}") from e
        if duration <= 0:
            raise ProbeError(f"Non-positive duration {duration} for {Path(path).name}")
        logger.debug(f"Probed {Path(path).name}: duration={duration:.3f}s")
        return duration

    async def image_resolution(self, path: Path) -> Resolution:
        """Width and height of the first stream."""
        data = await self.probe(path)
        streams = data.get("streams") or []
        if not streams:
            raise ProbeError(f"No streams found in {Path(path).name}")
        try:
            resolution = Resolution(int(streams[0]["width"]), int(streams[0]["height"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ProbeError(f"Could not determine resolution of {Path(path).name}") from e
        logger.debug(f"Probed {Path(path).name}: resolution={resolution}")
        return resolution
