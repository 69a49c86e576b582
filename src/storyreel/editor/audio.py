"""Off-screen mixing graph for the export path."""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

import numpy as np
from moviepy import AudioArrayClip, AudioFileClip

from .assets import AudioBuffer, materialize

if TYPE_CHECKING:
    from ..playback.clock import FrameClock

logger = logging.getLogger(__name__)


def match_channels(samples: np.ndarray, channels: int) -> np.ndarray:
    """Up- or down-mix (frames, n) samples to the given channel count."""
    if samples.shape[1] == channels:
        return samples
    if samples.shape[1] == 1:
        return np.repeat(samples, channels, axis=1)
    mono = samples.mean(axis=1, keepdims=True)
    return mono if channels == 1 else np.repeat(mono, channels, axis=1)


class BufferSource:
    """One-shot playback of a decoded buffer, scheduled on the graph clock."""

    def __init__(self, graph: "MixingGraph", buffer: AudioBuffer) -> None:
        self._graph = graph
        self.buffer = buffer
        self.start_time: Optional[float] = None
        self.stop_time: Optional[float] = None

    def connect(self, destination: "StreamDestination") -> None:
        destination.attach(self)

    def start(self, when: Optional[float] = None) -> None:
        """Schedule playback to begin at graph time `when` (now if None)."""
        if self.start_time is not None:
            raise RuntimeError("Buffer source can only be started once")
        now = self._graph.current_time
        self.start_time = now if when is None else max(when, now)

    def stop(self, when: Optional[float] = None) -> None:
        """Cut playback at graph time `when` (now if None)."""
        if self.start_time is None:
            raise RuntimeError("Buffer source was never started")
        when = self._graph.current_time if when is None else when
        self.stop_time = max(self.start_time, when)

    @property
    def end_time(self) -> Optional[float]:
        """Graph time at which this source falls silent."""
        if self.start_time is None:
            return None
        natural = self.start_time + self.buffer.duration
        if self.stop_time is None:
            return natural
        return min(natural, self.stop_time)

    def is_active(self, at: float) -> bool:
        end = self.end_time
        return self.start_time is not None and self.start_time <= at < end


class StreamDestination:
    """Shared output node; renders the mix of all connected sources."""

    def __init__(self, graph: "MixingGraph") -> None:
        self._graph = graph
        self._sources: List[BufferSource] = []

    @property
    def graph(self) -> "MixingGraph":
        return self._graph

    @property
    def sources(self) -> List[BufferSource]:
        return list(self._sources)

    def attach(self, source: BufferSource) -> None:
        if source not in self._sources:
            self._sources.append(source)

    def render(self, start: float, end: float) -> np.ndarray:
        """Mix connected sources over graph time [start, end).

        Returns:
            float32 array of shape (frames, channels), clipped to [-1, 1].
        """
        rate = self._graph.sample_rate
        total = max(0, int(round((end - start) * rate)))
        out = np.zeros((total, self._graph.channels), dtype=np.float32)

        for source in self._sources:
            if source.start_time is None:
                continue
            begin = max(start, source.start_time)
            finish = min(end, source.end_time)
            if finish <= begin:
                continue

            out_offset = int(round((begin - start) * rate))
            buf_offset = int(round((begin - source.start_time) * rate))
            count = int(round((finish - begin) * rate))
            count = min(count, total - out_offset, source.buffer.frames - buf_offset)
            if count <= 0:
                continue

            chunk = source.buffer.samples[buf_offset:buf_offset + count]
            out[out_offset:out_offset + count] += match_channels(chunk, self._graph.channels)

        return np.clip(out, -1.0, 1.0)


class MixingGraph:
    """Audio graph with its own clock, created once per export session."""

    def __init__(
        self,
        clock: "FrameClock",
        sample_rate: int = 44100,
        channels: int = 2
    ) -> None:
        self._clock = clock
        self._origin = clock.now()
        self.sample_rate = sample_rate
        self.channels = channels
        self.state = "running"
        self.destination = StreamDestination(self)

    @property
    def current_time(self) -> float:
        """Seconds since the graph was created."""
        return self._clock.now() - self._origin

    def create_buffer_source(self, buffer: AudioBuffer) -> BufferSource:
        """Create a one-shot source for a decoded buffer.

        Raises:
            RuntimeError: If the graph is closed.
            ValueError: If the buffer's sample rate differs from the graph's.
        """
        if self.state == "closed":
            raise RuntimeError("Mixing graph is closed")
        if buffer.sample_rate != self.sample_rate:
            raise ValueError(
                f"Buffer sample rate {buffer.sample_rate} does not match graph rate {self.sample_rate}"
            )
        return BufferSource(self, buffer)

    def active_sources(self, at: Optional[float] = None) -> List[BufferSource]:
        at = self.current_time if at is None else at
        return [s for s in self.destination.sources if s.is_active(at)]

    def close(self) -> None:
        if self.state != "closed":
            self.state = "closed"
            logger.debug("Closed mixing graph")


def write_audio(samples: np.ndarray, sample_rate: int, output_path: Path) -> Path:
    """Write rendered samples to an audio file.

    Args:
        samples: (frames, channels) float samples.
        sample_rate: Sample rate in Hz.
        output_path: Path for output audio file.

    Returns:
        Path to the written file.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if samples.shape[0] == 0:
        # moviepy cannot write an empty clip; one silent frame keeps the mux valid
        samples = np.zeros((1, samples.shape[1]), dtype=np.float32)
    clip = AudioArrayClip(samples, fps=sample_rate)
    clip.write_audiofile(str(output_path), fps=sample_rate, logger=None)
    clip.close()
    return output_path


def get_audio_duration(source: str) -> float:
    """Get the duration of an audio source in seconds."""
    path, is_temp = materialize(source, ".wav", "audio")
    try:
        audio = AudioFileClip(str(path))
        duration = audio.duration
        audio.close()
    finally:
        if is_temp:
            path.unlink(missing_ok=True)
    return duration
