"""Frame compositor: cover-fit visuals with a subtitle overlay."""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from .assets import Visual
from .overlays import SubtitleStyle, draw_subtitle


@dataclass(frozen=True)
class Placement:
    """Where a scaled source lands on the target, in target pixels."""

    x: float
    y: float
    width: float
    height: float
    scale: float


def cover_fit(
    src_width: float,
    src_height: float,
    dst_width: float,
    dst_height: float
) -> Placement:
    """Scale a source to fully cover the target, centered, aspect preserved.

    Args:
        src_width: Source width.
        src_height: Source height.
        dst_width: Target width.
        dst_height: Target height.

    Returns:
        Placement of the scaled source. Overflow on either axis is split
        evenly on both sides.

    Raises:
        ValueError: If any dimension is not positive.
    """
    if min(src_width, src_height, dst_width, dst_height) <= 0:
        raise ValueError(
            f"Invalid dimensions: source {src_width}x{src_height}, "
            f"target {dst_width}x{dst_height}"
        )

    ratio = max(dst_width / src_width, dst_height / src_height)
    width = src_width * ratio
    height = src_height * ratio
    return Placement(
        x=(dst_width - width) / 2,
        y=(dst_height - height) / 2,
        width=width,
        height=height,
        scale=ratio,
    )


def source_crop_box(
    src_size: Tuple[int, int],
    dst_size: Tuple[int, int]
) -> Tuple[float, float, float, float]:
    """Region of the source that stays visible after a cover-fit."""
    src_w, src_h = src_size
    dst_w, dst_h = dst_size
    placement = cover_fit(src_w, src_h, dst_w, dst_h)
    ratio = placement.scale

    left = max(0.0, -placement.x / ratio)
    top = max(0.0, -placement.y / ratio)
    right = min(float(src_w), left + dst_w / ratio)
    bottom = min(float(src_h), top + dst_h / ratio)
    return left, top, right, bottom


def draw_cover(canvas: Image.Image, source: Image.Image) -> Image.Image:
    """Draw a source image over the whole canvas using cover-fit.

    Args:
        canvas: Target frame, modified in place.
        source: Visual frame to draw.

    Returns:
        The canvas.
    """
    box = source_crop_box(source.size, canvas.size)
    if source.mode != canvas.mode:
        source = source.convert(canvas.mode)
    scaled = source.resize(canvas.size, Image.Resampling.BILINEAR, box=box)
    canvas.paste(scaled, (0, 0))
    return canvas


class Surface:
    """An RGB rendering surface of fixed size."""

    def __init__(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid surface size: {width}x{height}")
        self.width = width
        self.height = height
        self.image = Image.new("RGB", (width, height), (0, 0, 0))

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def clear(self, color: Tuple[int, int, int] = (0, 0, 0)) -> None:
        self.image.paste(color, (0, 0, self.width, self.height))

    def to_array(self) -> np.ndarray:
        """Copy of the current frame as an (H, W, 3) uint8 array."""
        return np.array(self.image, dtype=np.uint8)


def render(
    surface: Surface,
    visual: Optional[Visual],
    subtitle_text: Optional[str],
    now: float = 0.0,
    style: Optional[SubtitleStyle] = None,
) -> Surface:
    """Composite one frame: clear, cover-fit the visual, overlay the caption.

    Args:
        surface: Surface to draw on.
        visual: Still image or loop video, or None for a black frame.
        subtitle_text: Caption text; skipped when empty.
        now: Clock time used to pick the visual's current frame.
        style: Subtitle style. Uses default if None.

    Returns:
        The surface.
    """
    surface.clear()

    if visual is not None:
        draw_cover(surface.image, visual.frame(now))

    if subtitle_text:
        draw_subtitle(surface.image, subtitle_text, style)

    return surface
