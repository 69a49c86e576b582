"""Shared fixtures for storyreel tests."""

from pathlib import Path
from typing import Optional

import numpy as np
import pytest
from moviepy import VideoClip
from PIL import Image

from storyreel.editor.assets import pcm_to_wav
from storyreel.export.recorder import available_encoders
from storyreel.models import AudioRef, Scene, SceneStatus, VisualRef


def make_scene(
    scene_id: str,
    narration: str = "",
    image: Optional[str] = "scene.png",
    audio: Optional[str] = None,
    duration: Optional[float] = None,
) -> Scene:
    """Build a scene record without touching the filesystem."""
    return Scene(
        id=scene_id,
        narration=narration,
        visual=VisualRef(kind="image", source=image) if image else None,
        audio=AudioRef(source=audio, duration=duration) if audio else None,
        status=SceneStatus.COMPLETED if image else SceneStatus.PENDING,
    )


@pytest.fixture
def png_path(tmp_path: Path) -> Path:
    """A small landscape PNG, red on the left half and blue on the right."""
    image = Image.new("RGB", (200, 100), (255, 0, 0))
    image.paste((0, 0, 255), (100, 0, 200, 100))
    path = tmp_path / "scene.png"
    image.save(path)
    return path


def tone_wav(seconds: float, sample_rate: int = 24000) -> bytes:
    """A 440 Hz tone as mono 16-bit WAV."""
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    pcm = (np.sin(2 * np.pi * 440 * t) * 8000).astype("<i2").tobytes()
    return pcm_to_wav(pcm, sample_rate=sample_rate)


@pytest.fixture
def wav_bytes() -> bytes:
    """One second of a 440 Hz tone as 24 kHz mono 16-bit WAV."""
    return tone_wav(1.0)


@pytest.fixture
def wav_path(tmp_path: Path, wav_bytes: bytes) -> Path:
    path = tmp_path / "narration.wav"
    path.write_bytes(wav_bytes)
    return path


@pytest.fixture
def mp4_path(tmp_path: Path) -> Path:
    """A two second 64x48 clip: red for the first second, blue for the second."""
    if "mpeg4" not in available_encoders():
        pytest.skip("ffmpeg without the mpeg4 encoder")

    red = np.zeros((48, 64, 3), dtype=np.uint8)
    red[..., 0] = 255
    blue = np.zeros((48, 64, 3), dtype=np.uint8)
    blue[..., 2] = 255

    clip = VideoClip(lambda t: red if t < 1.0 else blue, duration=2.0)
    path = tmp_path / "loop.mp4"
    clip.write_videofile(str(path), fps=10, codec="mpeg4", audio=False, logger=None)
    clip.close()
    return path


def is_red(pixel) -> bool:
    r, g, b = pixel[:3]
    return r > 150 and b < 100


def is_blue(pixel) -> bool:
    r, g, b = pixel[:3]
    return b > 150 and r < 100
