"""Manifest data model."""

import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field

from .scene import Scene, ready_scenes

logger = logging.getLogger(__name__)


class AspectRatio(str, Enum):
    """Supported output aspect ratios."""
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"
    SQUARE = "1:1"

    @property
    def dimensions(self) -> Tuple[int, int]:
        """Target pixel dimensions as (width, height)."""
        return _DIMENSIONS[self]


_DIMENSIONS = {
    AspectRatio.LANDSCAPE: (1280, 720),
    AspectRatio.PORTRAIT: (720, 1280),
    AspectRatio.SQUARE: (1080, 1080),
}


def dimensions_for(aspect_ratio: str) -> Tuple[int, int]:
    """Map an aspect ratio tag to target pixel dimensions.

    Unknown tags fall back to the square format.

    Args:
        aspect_ratio: Tag such as "16:9", "9:16" or "1:1".

    Returns:
        (width, height) in pixels.
    """
    try:
        return AspectRatio(aspect_ratio).dimensions
    except ValueError:
        logger.warning(f"Unknown aspect ratio {aspect_ratio!r}, using 1:1")
        return AspectRatio.SQUARE.dimensions


class TransitionEffect(str, Enum):
    """Preview transition between scenes."""
    NONE = "none"
    FADE = "fade"
    SLIDE = "slide"
    ZOOM = "zoom"


class Manifest(BaseModel):
    """Story project manifest."""

    project_name: str = Field(..., description="Project name")
    background_music: Optional[str] = Field(None, description="Background music source")
    scenes: List[Scene] = Field(default_factory=list, description="List of scenes")
    aspect_ratio: AspectRatio = Field(default=AspectRatio.PORTRAIT, description="Output aspect ratio")
    transition: TransitionEffect = Field(default=TransitionEffect.FADE, description="Preview transition")

    class Config:
        """Pydantic config."""
        frozen = False

    @classmethod
    def from_yaml(cls, path: Path) -> "Manifest":
        """Load manifest from YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls(**data)

    def to_yaml(self, path: Path) -> None:
        """Save manifest to YAML file."""
        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False)

    def ready_scenes(self) -> List[Scene]:
        """Scenes with both a visual and narration audio, in order."""
        return ready_scenes(self.scenes)
