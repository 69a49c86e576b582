"""Configuration management."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


class Config(BaseModel):
    """Application configuration."""

    # Paths
    workspace: Path = Field(
        default_factory=lambda: Path(os.getenv("STORYREEL_WORKSPACE", ".")),
        description="Workspace directory"
    )
    font_path: Optional[str] = Field(
        default_factory=lambda: os.getenv("STORYREEL_FONT") or None,
        description="TrueType font used for subtitles"
    )

    # Capture settings
    fps: int = Field(
        default_factory=lambda: _env_int("STORYREEL_FPS", 30),
        description="Frames per second for preview and capture",
        gt=0
    )
    sample_rate: int = Field(
        default_factory=lambda: _env_int("STORYREEL_SAMPLE_RATE", 44100),
        description="Mixing graph sample rate in Hz",
        gt=0
    )
    video_bitrate: int = Field(
        default_factory=lambda: _env_int("STORYREEL_VIDEO_BITRATE", 5_000_000),
        description="Recorder video bits per second"
    )
    audio_bitrate: int = Field(
        default_factory=lambda: _env_int("STORYREEL_AUDIO_BITRATE", 128_000),
        description="Recorder audio bits per second"
    )

    # Preview audio
    music_volume: float = Field(
        default_factory=lambda: _env_float("STORYREEL_MUSIC_VOLUME", 0.15),
        description="Background music volume, ducked under narration",
        ge=0.0,
        le=1.0
    )

    class Config:
        """Pydantic config."""
        frozen = False

    def validate_capture(self) -> None:
        """Validate capture settings before an export.

        Raises:
            ValueError: If a bitrate is not positive.
        """
        invalid: list[str] = []

        if self.video_bitrate <= 0:
            invalid.append("STORYREEL_VIDEO_BITRATE")
        if self.audio_bitrate <= 0:
            invalid.append("STORYREEL_AUDIO_BITRATE")

        if invalid:
            raise ValueError(
                f"Invalid capture configuration: {', '.join(invalid)}. "
                "Bitrates must be positive."
            )


# Global config instance
config = Config()
