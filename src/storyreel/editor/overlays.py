"""Subtitle overlay layout and rendering for composited frames."""

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from ..config import config

logger = logging.getLogger(__name__)

RGBA = Tuple[int, int, int, int]

FALLBACK_FONTS = ("DejaVuSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf")


@dataclass(frozen=True)
class SubtitleStyle:
    """Configuration for caption styling, relative to the frame size."""

    font_path: Optional[str] = None
    font_scale: float = 0.025
    min_font_size: int = 14
    line_height: float = 1.4
    padding_x: float = 0.8
    padding_y: float = 0.4
    max_width_ratio: float = 0.9
    bottom_margin_ratio: float = 0.03
    min_bottom_margin: float = 20.0
    box_color: RGBA = (0, 0, 0, 128)
    corner_radius: int = 6
    text_color: RGBA = (255, 255, 255, 255)
    shadow_color: RGBA = (0, 0, 0, 204)
    shadow_blur: float = 1.0
    shadow_offset: Tuple[int, int] = (0, 1)


# Preset styles
STYLES = {
    "default": SubtitleStyle(),
    "large": SubtitleStyle(font_scale=0.04, min_font_size=18),
    "boxed": SubtitleStyle(box_color=(0, 0, 0, 170), corner_radius=10),
}


@dataclass(frozen=True)
class SubtitleLayout:
    """Computed caption geometry for one frame size."""

    font_size: int
    line_height: float
    lines: Tuple[str, ...]
    box: Tuple[float, float, float, float]
    padding_x: float
    padding_y: float

    @property
    def line_positions(self) -> List[Tuple[float, float]]:
        """Center point of each line."""
        x, y, w, _ = self.box
        start = y + self.padding_y + self.line_height / 2
        # Slight optical lift so glyphs sit visually centered
        return [
            (x + w / 2, start + i * self.line_height - self.line_height * 0.1)
            for i in range(len(self.lines))
        ]


@lru_cache(maxsize=64)
def load_font(size: int, path: Optional[str] = None) -> ImageFont.ImageFont:
    """Load a TrueType font at the given pixel size.

    Tries the explicit path, the configured font, then common bold sans
    fonts, and finally Pillow's bundled default font.
    """
    candidates = [p for p in (path, config.font_path) if p] + list(FALLBACK_FONTS)
    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    logger.debug(f"No TrueType font found, using Pillow default at {size}px")
    return ImageFont.load_default(size)


def font_size_for(width: int, style: SubtitleStyle) -> int:
    """Caption font size for a frame width."""
    return max(style.min_font_size, math.floor(width * style.font_scale))


def wrap_words(text: str, max_width: float, measure: Callable[[str], float]) -> List[str]:
    """Greedily wrap words into lines no wider than max_width.

    A word that is wider than max_width on its own is placed alone on its
    line without truncation.

    Args:
        text: Text to wrap.
        max_width: Maximum rendered line width.
        measure: Returns the rendered width of a string.

    Returns:
        Wrapped lines.
    """
    lines: List[str] = []
    line = ""

    for word in text.split():
        candidate = f"{line} {word}" if line else word
        if line and measure(candidate) > max_width:
            lines.append(line)
            line = word
        else:
            line = candidate

    if line:
        lines.append(line)
    return lines


def layout_subtitle(
    text: str,
    width: int,
    height: int,
    style: Optional[SubtitleStyle] = None,
    measure: Optional[Callable[[str], float]] = None,
) -> Optional[SubtitleLayout]:
    """Compute caption lines and the background box for a frame.

    Args:
        text: Caption text.
        width: Frame width in pixels.
        height: Frame height in pixels.
        style: Subtitle style. Uses default if None.
        measure: Width function for the caption font. Derived from the
            style's font when None.

    Returns:
        SubtitleLayout, or None when there is nothing to draw.
    """
    if style is None:
        style = STYLES["default"]

    font_size = font_size_for(width, style)
    if measure is None:
        measure = load_font(font_size, style.font_path).getlength

    lines = wrap_words(text, width * style.max_width_ratio, measure)
    if not lines:
        return None

    line_height = font_size * style.line_height
    padding_x = font_size * style.padding_x
    padding_y = font_size * style.padding_y
    bottom_margin = max(style.min_bottom_margin, height * style.bottom_margin_ratio)

    box_w = max(measure(line) for line in lines) + padding_x * 2
    box_h = len(lines) * line_height + padding_y * 2
    box_x = (width - box_w) / 2
    box_y = height - bottom_margin - box_h

    return SubtitleLayout(
        font_size=font_size,
        line_height=line_height,
        lines=tuple(lines),
        box=(box_x, box_y, box_w, box_h),
        padding_x=padding_x,
        padding_y=padding_y,
    )


@lru_cache(maxsize=32)
def _render_overlay(
    text: str,
    width: int,
    height: int,
    style: SubtitleStyle,
) -> Optional[Tuple[Tuple[int, int, int, int], Image.Image]]:
    """Render the caption once as an RGBA patch plus its frame region."""
    layout = layout_subtitle(text, width, height, style)
    if layout is None:
        return None

    font = load_font(layout.font_size, style.font_path)
    x, y, w, h = layout.box
    margin = int(math.ceil(style.shadow_blur * 3)) + 2
    region = (
        max(0, int(math.floor(x)) - margin),
        max(0, int(math.floor(y)) - margin),
        min(width, int(math.ceil(x + w)) + margin),
        min(height, int(math.ceil(y + h)) + margin),
    )
    ox, oy = region[0], region[1]
    size = (region[2] - region[0], region[3] - region[1])

    patch = Image.new("RGBA", size, (0, 0, 0, 0))
    ImageDraw.Draw(patch).rounded_rectangle(
        (x - ox, y - oy, x - ox + w, y - oy + h),
        radius=style.corner_radius,
        fill=style.box_color,
    )

    shadow = Image.new("RGBA", size, (0, 0, 0, 0))
    shadow_draw = ImageDraw.Draw(shadow)
    dx, dy = style.shadow_offset
    for line, (cx, cy) in zip(layout.lines, layout.line_positions):
        shadow_draw.text((cx - ox + dx, cy - oy + dy), line, font=font, fill=style.shadow_color, anchor="mm")
    if style.shadow_blur > 0:
        shadow = shadow.filter(ImageFilter.GaussianBlur(radius=style.shadow_blur))
    patch = Image.alpha_composite(patch, shadow)

    text_draw = ImageDraw.Draw(patch)
    for line, (cx, cy) in zip(layout.lines, layout.line_positions):
        text_draw.text((cx - ox, cy - oy), line, font=font, fill=style.text_color, anchor="mm")

    return region, patch


def draw_subtitle(
    image: Image.Image,
    text: str,
    style: Optional[SubtitleStyle] = None,
) -> Image.Image:
    """Draw a boxed caption near the bottom of an RGB frame, in place.

    Args:
        image: Frame to draw on.
        text: Caption text. Nothing is drawn when empty.
        style: Subtitle style. Uses default if None.

    Returns:
        The same image, for chaining.
    """
    if not text or not text.strip():
        return image
    if style is None:
        style = STYLES["default"]

    rendered = _render_overlay(text, image.width, image.height, style)
    if rendered is None:
        return image

    region, patch = rendered
    background = image.crop(region).convert("RGBA")
    image.paste(Image.alpha_composite(background, patch).convert("RGB"), region[:2])
    return image


def get_style(name: str) -> SubtitleStyle:
    """Get a subtitle style by name.

    Raises:
        ValueError: If style not found.
    """
    if name not in STYLES:
        raise ValueError(f"Unknown style: {name}. Available: {list(STYLES.keys())}")
    return STYLES[name]


def register_style(name: str, style: SubtitleStyle) -> None:
    """Register a custom subtitle style."""
    STYLES[name] = style
