"""Continuous frame capture and final audio/video mux."""

import logging
import math
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Callable, FrozenSet, List, Optional, Sequence, Tuple

from moviepy.config import FFMPEG_BINARY
from moviepy.tools import subprocess_call
from moviepy.video.io.ffmpeg_writer import FFMPEG_VideoWriter

from ..editor.audio import StreamDestination, write_audio
from ..editor.compositor import Surface
from ..errors import CaptureSetupError, StoryReelError

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "video/webm"


@dataclass(frozen=True)
class ContainerFormat:
    """An output container with the encoders it needs."""

    mime_type: str
    extension: str
    video_codec: str
    audio_codec: str
    ffmpeg_params: Tuple[str, ...] = ()
    audio_sample_rate: Optional[int] = None


CONTAINERS: Tuple[ContainerFormat, ...] = (
    ContainerFormat(
        "video/webm;codecs=vp9,opus",
        "webm",
        "libvpx-vp9",
        "libopus",
        ("-deadline", "realtime", "-cpu-used", "8", "-pix_fmt", "yuv420p"),
        audio_sample_rate=48000,
    ),
    ContainerFormat(
        "video/webm",
        "webm",
        "libvpx",
        "libvorbis",
        ("-deadline", "realtime", "-cpu-used", "8", "-pix_fmt", "yuv420p"),
    ),
    ContainerFormat("video/mp4", "mp4", "libx264", "aac"),
)


@lru_cache(maxsize=1)
def available_encoders() -> FrozenSet[str]:
    """Names of the encoders the ffmpeg binary used by moviepy provides."""
    try:
        result = subprocess.run(
            [FFMPEG_BINARY, "-hide_banner", "-encoders"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.warning(f"Could not list ffmpeg encoders: {e}")
        return frozenset()

    names = set()
    for line in result.stdout.splitlines():
        parts = line.split()
        # Encoder rows look like " V....D libx264  description"
        if len(parts) >= 2 and len(parts[0]) == 6 and parts[0][0] in "VAS":
            names.add(parts[1])
    return frozenset(names)


def is_type_supported(
    container: ContainerFormat,
    encoders: Optional[FrozenSet[str]] = None,
) -> bool:
    encoders = available_encoders() if encoders is None else encoders
    return container.video_codec in encoders and container.audio_codec in encoders


def negotiate_container(
    candidates: Sequence[ContainerFormat] = CONTAINERS,
    encoders: Optional[FrozenSet[str]] = None,
) -> ContainerFormat:
    """Pick the first supported container, falling back to plain webm."""
    for container in candidates:
        if is_type_supported(container, encoders):
            logger.debug(f"Negotiated container {container.mime_type}")
            return container

    fallback = next(c for c in CONTAINERS if c.mime_type == DEFAULT_MIME_TYPE)
    logger.warning(f"No candidate container supported; falling back to {fallback.mime_type}")
    return fallback


@dataclass(frozen=True)
class SceneTiming:
    """When a scene was on screen.

    `start` and `end` are recording time; `audio_start` and `audio_stop`
    are mixing-graph time.
    """

    index: int
    scene_id: str
    start: float
    end: float
    audio_start: Optional[float] = None
    audio_stop: Optional[float] = None

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class EncodedBlob:
    """The single encoded output of an export session."""

    data: bytes
    mime_type: str
    extension: str
    duration: float
    frame_count: int = 0
    scenes: List[SceneTiming] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)

    @property
    def scenes_rendered(self) -> int:
        return len(self.scenes)

    def save(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.data)
        logger.info(f"Saved {self.mime_type} ({len(self.data)} bytes) to {path}")
        return path


class CaptureStream:
    """The surface's live frame track bound with the graph's audio output."""

    def __init__(
        self,
        surface: Optional[Surface],
        destination: Optional[StreamDestination],
    ) -> None:
        if surface is None:
            raise CaptureSetupError("No surface to capture frames from")
        if destination is None:
            raise CaptureSetupError("No audio destination to capture")
        self.surface = surface
        self.destination = destination

    @property
    def size(self) -> Tuple[int, int]:
        return self.surface.size


class MediaRecorder:
    """Records a capture stream into one continuous encoded blob.

    Video frames are encoded as they are captured, at a constant frame
    rate: a late capture repeats the current frame to fill the gap. Audio
    for the whole recording window is rendered from the destination when
    the recorder stops and muxed with the encoded video.
    """

    def __init__(
        self,
        stream: CaptureStream,
        container: ContainerFormat,
        clock,
        fps: int = 30,
        video_bitrate: int = 5_000_000,
        audio_bitrate: int = 128_000,
        on_stop: Optional[Callable[[], None]] = None,
    ) -> None:
        self.stream = stream
        self.container = container
        self.clock = clock
        self.fps = fps
        self.video_bitrate = video_bitrate
        self.audio_bitrate = audio_bitrate
        self.on_stop = on_stop
        self.state = "inactive"
        self.frames = 0
        self._writer: Optional[FFMPEG_VideoWriter] = None
        self._workdir: Optional[Path] = None
        self.started_at = 0.0
        self._audio_start = 0.0

    @property
    def elapsed(self) -> float:
        """Recording time, in seconds since start."""
        return self.clock.now() - self.started_at

    def start(self) -> None:
        """Open the encoder and capture the first frame.

        Raises:
            CaptureSetupError: If the encoder cannot be started.
        """
        if self.state != "inactive":
            raise RuntimeError(f"Recorder already {self.state}")

        self._workdir = Path(tempfile.mkdtemp(prefix="storyreel-"))
        video_path = self._workdir / f"video.{self.container.extension}"
        try:
            self._writer = FFMPEG_VideoWriter(
                str(video_path),
                self.stream.size,
                self.fps,
                codec=self.container.video_codec,
                bitrate=f"{self.video_bitrate // 1000}k",
                ffmpeg_params=list(self.container.ffmpeg_params),
            )
        except OSError as e:
            self._cleanup()
            raise CaptureSetupError(
                f"Failed to start {self.container.video_codec} encoder: {e}"
            ) from e

        self._video_path = video_path
        self.started_at = self.clock.now()
        self._audio_start = self.stream.destination.graph.current_time
        self.frames = 0
        self.state = "recording"
        logger.info(
            f"Recording {self.stream.size[0]}x{self.stream.size[1]} "
            f"{self.container.mime_type} at {self.fps} fps"
        )
        self.capture_frame()

    def capture_frame(self) -> None:
        """Encode the surface's current frame for the current clock time.

        Raises:
            StoryReelError: If the encoder stops accepting frames.
        """
        if self.state != "recording":
            raise RuntimeError("Recorder is not recording")
        self._fill_to(math.floor(self.elapsed * self.fps + 1e-6) + 1)

    def stop(self) -> EncodedBlob:
        """Finish the recording and return the muxed blob.

        Raises:
            StoryReelError: If muxing the recorded streams fails.
        """
        if self.state != "recording":
            raise RuntimeError("Recorder is not recording")

        self._fill_to(math.floor(self.elapsed * self.fps + 1e-6))
        self._writer.close()
        self._writer = None
        self.state = "inactive"

        duration = self.frames / self.fps
        try:
            audio = self.stream.destination.render(self._audio_start, self._audio_start + duration)
            audio_path = write_audio(
                audio,
                self.stream.destination.graph.sample_rate,
                self._workdir / "audio.wav",
            )
            output_path = self._workdir / f"output.{self.container.extension}"
            self._mux(self._video_path, audio_path, output_path)
            data = output_path.read_bytes()
        except OSError as e:
            raise StoryReelError(f"Failed to finalize recording: {e}") from e
        finally:
            self._cleanup()
            if self.on_stop is not None:
                self.on_stop()

        logger.info(f"Recorded {self.frames} frames ({duration:.2f}s, {len(data)} bytes)")
        return EncodedBlob(
            data=data,
            mime_type=self.container.mime_type,
            extension=self.container.extension,
            duration=duration,
            frame_count=self.frames,
        )

    def abort(self) -> None:
        """Drop the recording without producing output."""
        if self._writer is not None:
            try:
                self._writer.close()
            except OSError as e:
                logger.warning(f"Encoder did not shut down cleanly: {e}")
            self._writer = None
        self.state = "inactive"
        self._cleanup()
        if self.on_stop is not None:
            self.on_stop()

    def _fill_to(self, target: int) -> None:
        if self.frames >= target:
            return
        frame = self.stream.surface.to_array()
        try:
            while self.frames < target:
                self._writer.write_frame(frame)
                self.frames += 1
        except OSError as e:
            raise StoryReelError(f"Encoder failed after {self.frames} frames: {e}") from e

    def _mux(self, video_path: Path, audio_path: Path, output_path: Path) -> None:
        cmd = [
            FFMPEG_BINARY, "-y",
            "-i", str(video_path),
            "-i", str(audio_path),
            "-map", "0:v:0", "-map", "1:a:0",
            "-c:v", "copy",
            "-c:a", self.container.audio_codec,
            "-b:a", f"{self.audio_bitrate // 1000}k",
        ]
        if self.container.audio_sample_rate:
            cmd.extend(["-ar", str(self.container.audio_sample_rate)])
        cmd.append(str(output_path))
        subprocess_call(cmd, logger=None)

    def _cleanup(self) -> None:
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None
