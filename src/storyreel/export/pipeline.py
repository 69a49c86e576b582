"""Real-time export: render scenes in order while recording one continuous stream."""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Sequence

from ..config import config
from ..editor.assets import AudioBuffer, Visual, load_audio, load_visual
from ..editor.audio import MixingGraph
from ..editor.compositor import Surface, render
from ..editor.overlays import SubtitleStyle
from ..errors import AssetLoadError, EmptyInputError, ExportInProgressError
from ..models.manifest import dimensions_for
from ..models.scene import Scene
from ..playback.clock import FrameClock, RealtimeClock
from .recorder import (
    CONTAINERS,
    CaptureStream,
    ContainerFormat,
    EncodedBlob,
    MediaRecorder,
    SceneTiming,
    negotiate_container,
)

logger = logging.getLogger(__name__)

NARRATION_TAIL = 0.5  # seconds held after narration ends
NO_AUDIO_DURATION = 5.0

ProgressHandler = Callable[[str], None]


def visible_duration(audio: Optional[AudioBuffer]) -> float:
    """How long a scene stays on screen during export."""
    if audio is not None:
        return audio.duration + NARRATION_TAIL
    return NO_AUDIO_DURATION


@dataclass
class ExportSession:
    """State of one export call."""

    width: int
    height: int
    scenes: List[Scene]
    container: ContainerFormat
    timings: List[SceneTiming] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)


class Exporter:
    """Serializes a scene list into a single encoded blob.

    One export runs at a time per exporter; the scenes are rendered in
    order on the given clock, each held for its visible duration while its
    narration plays through the mixing graph.
    """

    def __init__(
        self,
        recorder_factory: Callable[..., MediaRecorder] = MediaRecorder,
        containers: Sequence[ContainerFormat] = CONTAINERS,
        fps: Optional[int] = None,
        sample_rate: Optional[int] = None,
        video_bitrate: Optional[int] = None,
        audio_bitrate: Optional[int] = None,
        style: Optional[SubtitleStyle] = None,
        visual_loader: Callable[..., Visual] = load_visual,
        audio_loader: Callable[..., AudioBuffer] = load_audio,
    ) -> None:
        self.recorder_factory = recorder_factory
        self.containers = tuple(containers)
        self.fps = fps or config.fps
        self.sample_rate = sample_rate or config.sample_rate
        self.video_bitrate = video_bitrate or config.video_bitrate
        self.audio_bitrate = audio_bitrate or config.audio_bitrate
        self.style = style
        self._load_visual = visual_loader
        self._load_audio = audio_loader
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    async def export(
        self,
        scenes: Sequence[Scene],
        aspect_ratio: str = "9:16",
        clock: Optional[FrameClock] = None,
        on_progress: Optional[ProgressHandler] = None,
    ) -> EncodedBlob:
        """Render and record every scene, in order.

        Args:
            scenes: Ready scenes, already filtered by the caller.
            aspect_ratio: Aspect tag selecting the output dimensions.
            clock: Frame clock. Defaults to wall-clock time.
            on_progress: Called with a status line as each scene starts.

        Returns:
            The encoded recording.

        Raises:
            EmptyInputError: If there are no scenes.
            ExportInProgressError: If another export is running.
            CaptureSetupError: If the capture stream or recorder fails.
            StoryReelError: If encoding or muxing fails.
        """
        if not scenes:
            raise EmptyInputError("No scenes to export")
        if self._busy:
            raise ExportInProgressError("An export is already in progress")

        self._busy = True
        try:
            return await self._run(list(scenes), aspect_ratio, clock, on_progress)
        finally:
            self._busy = False

    async def _run(
        self,
        scenes: List[Scene],
        aspect_ratio: str,
        clock: Optional[FrameClock],
        on_progress: Optional[ProgressHandler],
    ) -> EncodedBlob:
        clock = clock or RealtimeClock(self.fps)
        width, height = dimensions_for(aspect_ratio)

        surface = Surface(width, height)
        surface.clear()

        graph = MixingGraph(clock, self.sample_rate)
        stream = CaptureStream(surface, graph.destination)
        session = ExportSession(width, height, scenes, negotiate_container(self.containers))

        recorder = self.recorder_factory(
            stream,
            session.container,
            clock,
            fps=self.fps,
            video_bitrate=self.video_bitrate,
            audio_bitrate=self.audio_bitrate,
            on_stop=graph.close,
        )
        try:
            recorder.start()
        except Exception:
            graph.close()
            raise

        try:
            total = len(scenes)
            for index, scene in enumerate(scenes):
                if on_progress is not None:
                    on_progress(f"Rendering scene {index + 1}/{total}...")
                await self._render_scene(index, scene, session, surface, graph, recorder, clock)

            blob = await asyncio.to_thread(recorder.stop)
        finally:
            if recorder.state == "recording":
                recorder.abort()

        logger.info(
            f"Exported {len(session.timings)}/{total} scenes "
            f"({blob.duration:.2f}s, {session.container.mime_type})"
        )
        return replace(blob, scenes=session.timings, skipped=session.skipped)

    async def _render_scene(
        self,
        index: int,
        scene: Scene,
        session: ExportSession,
        surface: Surface,
        graph: MixingGraph,
        recorder: MediaRecorder,
        clock: FrameClock,
    ) -> None:
        if scene.visual is None:
            logger.warning(f"Scene {index + 1} has no visual, skipping")
            session.skipped.append(index)
            return

        try:
            visual = await asyncio.to_thread(self._load_visual, scene.visual)
        except AssetLoadError as e:
            logger.error(f"Skipping scene {index + 1}: {e}")
            session.skipped.append(index)
            return

        audio = None
        if scene.audio is not None:
            try:
                audio = await asyncio.to_thread(self._load_audio, scene.audio.source, self.sample_rate)
            except AssetLoadError as e:
                logger.error(f"Skipping scene {index + 1}: {e}")
                visual.close()
                session.skipped.append(index)
                return

        visible = visible_duration(audio)
        logger.debug(f"Scene {index + 1}: visible for {visible:.2f}s")

        start = clock.now()
        visual.play(start)

        source = None
        if audio is not None:
            source = graph.create_buffer_source(audio)
            source.connect(graph.destination)
            source.start(graph.current_time)

        try:
            while True:
                now = clock.now()
                render(surface, visual, scene.narration, now, self.style)
                recorder.capture_frame()
                if now - start >= visible - 1e-6:
                    break
                await clock.next_frame()
        finally:
            if source is not None:
                source.stop()
            visual.pause(clock.now())
            visual.close()

        session.timings.append(
            SceneTiming(
                index=index,
                scene_id=scene.id,
                start=start - recorder.started_at,
                end=clock.now() - recorder.started_at,
                audio_start=source.start_time if source else None,
                audio_stop=source.end_time if source else None,
            )
        )


_default_exporter: Optional[Exporter] = None


async def export_scenes(
    scenes: Sequence[Scene],
    aspect_ratio: str = "9:16",
    *,
    clock: Optional[FrameClock] = None,
    on_progress: Optional[ProgressHandler] = None,
) -> EncodedBlob:
    """Export scenes with the shared default exporter."""
    global _default_exporter
    if _default_exporter is None:
        _default_exporter = Exporter()
    return await _default_exporter.export(scenes, aspect_ratio, clock=clock, on_progress=on_progress)
