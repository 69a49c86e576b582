"""Asset loading for scene visuals and narration audio."""

import base64
import io
import logging
import os
import tempfile
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union
from urllib.parse import unquote_to_bytes, urlparse
from urllib.request import url2pathname

import numpy as np
import requests
from moviepy import AudioFileClip, VideoFileClip
from PIL import Image

from ..errors import AssetLoadError
from ..models.scene import VisualRef

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0


def _describe(source: str) -> str:
    """Shorten a source for log and error messages."""
    if source.startswith("data:"):
        return source[:source.find(",") + 1] + "..."
    return source


def read_source(source: str, kind: str = "asset") -> bytes:
    """Read the raw bytes behind a source string.

    Args:
        source: Local path, file:// or http(s):// URL, or data URI.
        kind: Asset kind for error reporting.

    Returns:
        The asset bytes.

    Raises:
        AssetLoadError: If the source cannot be read.
    """
    try:
        if source.startswith("data:"):
            header, _, payload = source.partition(",")
            if header.endswith(";base64"):
                return base64.b64decode(payload, validate=True)
            return unquote_to_bytes(payload)

        parsed = urlparse(source)
        if parsed.scheme in ("http", "https"):
            response = requests.get(source, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
            return response.content

        if parsed.scheme == "file":
            return Path(url2pathname(parsed.path)).read_bytes()

        return Path(source).read_bytes()

    except (OSError, ValueError, requests.RequestException) as e:
        raise AssetLoadError(
            f"Failed to read {kind} {_describe(source)}: {e}",
            source=source,
            kind=kind,
        ) from e


def materialize(source: str, suffix: str, kind: str) -> Tuple[Path, bool]:
    """Return a filesystem path for a source, downloading to a temp file if needed.

    Returns:
        (path, is_temporary)
    """
    parsed = urlparse(source)
    if not source.startswith("data:") and parsed.scheme in ("", "file"):
        path = Path(url2pathname(parsed.path)) if parsed.scheme == "file" else Path(source)
        if not path.exists():
            raise AssetLoadError(f"{kind.capitalize()} file not found: {path}", source=source, kind=kind)
        return path, False

    data = read_source(source, kind)
    fd, name = tempfile.mkstemp(suffix=suffix, prefix="storyreel-")
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    return Path(name), True


@dataclass
class AudioBuffer:
    """Decoded narration samples, shape (frames, channels), float32 in [-1, 1]."""

    samples: np.ndarray
    sample_rate: int

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate


class StillImage:
    """A static image visual. Play state has no effect on its frames."""

    def __init__(self, image: Image.Image) -> None:
        self.image = image

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    def play(self, now: float) -> None:
        pass

    def pause(self, now: float) -> None:
        pass

    def rewind(self, now: float) -> None:
        pass

    def frame(self, now: float) -> Image.Image:
        return self.image

    def close(self) -> None:
        pass


class LoopVideo:
    """A muted, looping clip whose position follows an external clock.

    Only the metadata has to be loaded before use; frames are decoded on
    demand at the clip's current position.
    """

    def __init__(self, clip: VideoFileClip, temp_path: Optional[Path] = None) -> None:
        self._clip = clip
        self._temp_path = temp_path
        self.loop = True
        self.muted = True
        self._playing = False
        self._position = 0.0
        self._started_at = 0.0

    @property
    def size(self) -> Tuple[int, int]:
        return tuple(self._clip.size)

    @property
    def duration(self) -> float:
        return float(self._clip.duration or 0.0)

    @property
    def is_playing(self) -> bool:
        return self._playing

    def position(self, now: float) -> float:
        """Playback position in seconds at clock time `now`."""
        raw = now - self._started_at if self._playing else self._position
        if self.duration <= 0:
            return 0.0
        if self.loop:
            return raw % self.duration
        return min(raw, self.duration)

    def play(self, now: float) -> None:
        if not self._playing:
            self._started_at = now - self._position
            self._playing = True

    def pause(self, now: float) -> None:
        if self._playing:
            self._position = self.position(now)
            self._playing = False

    def rewind(self, now: float) -> None:
        self._position = 0.0
        self._started_at = now

    def frame(self, now: float) -> Image.Image:
        # Stay strictly inside the clip; the reader can fail on the last timestamp
        t = min(self.position(now), max(0.0, self.duration - 1e-3))
        return Image.fromarray(self._clip.get_frame(t)).convert("RGB")

    def close(self) -> None:
        self._clip.close()
        if self._temp_path is not None:
            self._temp_path.unlink(missing_ok=True)
            self._temp_path = None


Visual = Union[StillImage, LoopVideo]


def load_image(source: str) -> StillImage:
    """Load a still image visual.

    Raises:
        AssetLoadError: If the image cannot be read or decoded.
    """
    data = read_source(source, "image")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (OSError, Image.DecompressionBombError) as e:
        raise AssetLoadError(f"Failed to decode image {_describe(source)}: {e}", source=source, kind="image") from e

    logger.debug(f"Loaded image {_describe(source)} ({image.width}x{image.height})")
    return StillImage(image.convert("RGB"))


def load_video(source: str) -> LoopVideo:
    """Open a looping clip visual; only its metadata is read up front.

    Raises:
        AssetLoadError: If the clip cannot be opened.
    """
    path, is_temp = materialize(source, ".mp4", "video")
    try:
        clip = VideoFileClip(str(path), audio=False)
    except Exception as e:
        if is_temp:
            path.unlink(missing_ok=True)
        raise AssetLoadError(f"Failed to open video {_describe(source)}: {e}", source=source, kind="video") from e

    logger.debug(f"Loaded video {_describe(source)} ({clip.w}x{clip.h}, {clip.duration:.2f}s)")
    return LoopVideo(clip, path if is_temp else None)


def load_visual(ref: VisualRef) -> Visual:
    """Load a scene visual according to its kind."""
    if ref.kind == "video":
        return load_video(ref.source)
    return load_image(ref.source)


def load_audio(source: str, sample_rate: int = 44100) -> AudioBuffer:
    """Decode narration audio into a sample buffer at the given rate.

    Args:
        source: Audio source.
        sample_rate: Target sample rate (the mixing graph's rate).

    Returns:
        Decoded AudioBuffer.

    Raises:
        AssetLoadError: If the audio cannot be read or decoded.
    """
    path, is_temp = materialize(source, ".wav", "audio")
    clip = None
    try:
        clip = AudioFileClip(str(path), fps=sample_rate)
        # Each read must span under half the reader buffer, which is sized to
        # the clip itself for short files
        chunksize = max(1, clip.buffersize // 2)
        chunks = [
            np.asarray(chunk, dtype=np.float32).reshape(len(chunk), -1)
            for chunk in clip.iter_chunks(chunksize=chunksize, fps=sample_rate, quantize=False, logger=None)
        ]
        samples = np.concatenate(chunks)
    except Exception as e:
        raise AssetLoadError(f"Failed to decode audio {_describe(source)}: {e}", source=source, kind="audio") from e
    finally:
        if clip is not None:
            clip.close()
        if is_temp:
            path.unlink(missing_ok=True)

    buffer = AudioBuffer(samples=samples, sample_rate=sample_rate)
    logger.debug(f"Decoded audio {_describe(source)} ({buffer.duration:.2f}s, {buffer.channels}ch)")
    return buffer


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int = 24000,
    channels: int = 1,
    sample_width: int = 2,
) -> bytes:
    """Wrap raw little-endian PCM in a WAV container.

    Speech synthesis returns headerless 16-bit mono PCM at 24 kHz.
    """
    out = io.BytesIO()
    with wave.open(out, "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(sample_width)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    return out.getvalue()


def wav_data_uri(wav: bytes) -> str:
    """Encode WAV bytes as a data URI usable as an audio source."""
    return "data:audio/wav;base64," + base64.b64encode(wav).decode("ascii")
