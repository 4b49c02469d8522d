"""Ken Burns zoom parameters and the ffmpeg zoompan filter built from them.

The crop window shrinks uniformly from full frame to 1/final_zoom scale in
frame-linear steps, centred on the image, clamped at final_zoom.
"""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class ZoomPanConfig:
    duration: float
    width: int
    height: int
    fps: int = 60
    initial_zoom: float = 1.0
    final_zoom: float = 1.5
    prescale_width: int = 8000

    def __post_init__(self):
        if self.duration <= 0:
            raise ValueError(f"duration must be positive, got {self.duration}")
        if self.fps <= 0:
            raise ValueError(f"fps must be positive, got {self.fps}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"invalid output size {self.width}x{self.height}")
        if self.final_zoom < self.initial_zoom:
            raise ValueError("final_zoom must not be below initial_zoom")

    @property
    def frames(self) -> int:
        return math.ceil(self.duration * self.fps)

    @property
    def zoom_increment(self) -> float:
        return (self.final_zoom - self.initial_zoom) / self.frames

    def zoom_at(self, frame: int) -> float:
        """Zoom factor applied at output frame ``frame`` (0-based)."""
        return min(self.initial_zoom + self.zoom_increment * frame, self.final_zoom)


def build_zoompan_filter(config: ZoomPanConfig) -> str:
    """Render the scale+zoompan filter chain for a still image.

    Pre-scaling to a very wide canvas avoids the jitter zoompan shows when it
    rounds crop offsets on small inputs.
    """
    x_expr = "(iw-(iw/zoom))*(0.5)"
    y_expr = "(ih-(ih/zoom))*(0.5)"
    return (
        f"scale={config.prescale_width}:-1,"
        f"zoompan=z='min(zoom+{config.zoom_increment:.6f},{config.final_zoom})'"
        f":d={config.frames}"
        f":x='{x_expr}':y='{y_expr}'"
        f":s={config.width}x{config.height}"
        f":fps={config.fps}"
    )
