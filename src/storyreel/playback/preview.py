"""Interactive preview: timeline, scene clock, players and transitions on a live surface."""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Sequence, Set, Union

from PIL import Image, ImageDraw

from ..config import config
from ..editor.assets import Visual, LoopVideo, load_visual
from ..editor.compositor import Surface, draw_cover
from ..editor.overlays import SubtitleStyle, draw_subtitle, load_font
from ..editor.transitions import LayerPresentation, presentation
from ..errors import AssetLoadError
from ..models.manifest import TransitionEffect, dimensions_for
from ..models.scene import Scene, SceneStatus
from .clock import FrameClock, RealtimeClock
from .players import AudioOutput, PlaybackContext
from .scene_clock import SceneClock
from .timeline import Timeline

logger = logging.getLogger(__name__)

PROGRESS_BAR_HEIGHT = 6
PROGRESS_COLOR = (59, 130, 246)
PROGRESS_TRACK_COLOR = (31, 41, 55)
PLACEHOLDER_COLOR = (17, 24, 39)


def _ease_in_out(t: float) -> float:
    return 3 * t * t - 2 * t * t * t


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


class AnimatedLayer:
    """Animates one layer from its current state toward a target presentation."""

    def __init__(self, target: LayerPresentation, now: float) -> None:
        self._from = target
        self.target = target
        self._started_at = now

    def retarget(self, target: LayerPresentation, now: float) -> None:
        if target == self.target:
            return
        self._from = self.state(now)
        self.target = target
        self._started_at = now

    def state(self, now: float) -> LayerPresentation:
        target = self.target
        if not target.visible or target.duration_ms <= 0:
            return target

        t = (now - self._started_at) * 1000 / target.duration_ms
        if t >= 1:
            return target
        k = _ease_in_out(max(0.0, t))
        start = self._from if self._from.visible else replace(target, opacity=0.0)
        return replace(
            target,
            opacity=_lerp(start.opacity, target.opacity, k),
            scale=_lerp(start.scale, target.scale, k),
            offset_x=_lerp(start.offset_x, target.offset_x, k),
        )


class PreviewSurface:
    """Live surface that stacks scene layers with animated transitions."""

    def __init__(
        self,
        width: int,
        height: int,
        effect: Union[TransitionEffect, str] = TransitionEffect.FADE,
        style: Optional[SubtitleStyle] = None,
    ) -> None:
        self.surface = Surface(width, height)
        self.effect = TransitionEffect(effect)
        self.style = style
        self._layers: Dict[int, AnimatedLayer] = {}

    @property
    def size(self):
        return self.surface.size

    def set_effect(self, effect: Union[TransitionEffect, str]) -> None:
        self.effect = TransitionEffect(effect)
        self._layers.clear()

    def update(self, count: int, active_index: int, now: float) -> None:
        """Point every layer at its presentation for the active index."""
        for index in list(self._layers):
            if index >= count:
                del self._layers[index]
        for index in range(count):
            target = presentation(index, active_index, self.effect)
            layer = self._layers.get(index)
            if layer is None:
                self._layers[index] = AnimatedLayer(target, now)
            else:
                layer.retarget(target, now)

    def layer_state(self, index: int, now: float) -> Optional[LayerPresentation]:
        layer = self._layers.get(index)
        return layer.state(now) if layer else None

    def render(
        self,
        visuals: Dict[int, Visual],
        now: float,
        subtitle: Optional[str] = None,
        progress: float = 0.0,
        overlay: Optional[str] = None,
        indicator: Optional[str] = None,
    ) -> Image.Image:
        """Composite all visible layers plus the preview chrome."""
        width, height = self.surface.size
        frame = Image.new("RGB", (width, height), PLACEHOLDER_COLOR)

        states = []
        for index, layer in self._layers.items():
            state = layer.state(now)
            if state.visible and index in visuals and state.opacity > 0:
                states.append((state.z_index, index, state))

        for _, index, state in sorted(states, key=lambda item: (item[0], item[1])):
            layer_image = Image.new("RGB", (width, height))
            draw_cover(layer_image, visuals[index].frame(now))

            if state.scale != 1.0:
                scaled = layer_image.resize(
                    (max(1, round(width * state.scale)), max(1, round(height * state.scale))),
                    Image.Resampling.BILINEAR,
                )
                left = (scaled.width - width) // 2
                top = (scaled.height - height) // 2
                layer_image = scaled.crop((left, top, left + width, top + height))

            placed = frame.copy()
            placed.paste(layer_image, (round(state.offset_x * width), 0))
            frame = placed if state.opacity >= 1.0 else Image.blend(frame, placed, state.opacity)

        if overlay:
            self._draw_overlay(frame, overlay)
        if subtitle:
            draw_subtitle(frame, subtitle, self.style)
        self._draw_progress(frame, progress)
        if indicator:
            font = load_font(max(12, width // 50))
            ImageDraw.Draw(frame).text((width - 16, 16), indicator, font=font, fill=(255, 255, 255), anchor="ra")

        self.surface.image = frame
        return frame

    def _draw_overlay(self, frame: Image.Image, overlay: str) -> None:
        labels = {
            "loading": "Generating Visual...",
            "error": "Visual Generation Failed",
            "animating": "ANIMATING SCENE...",
        }
        shade = Image.new("RGB", frame.size, PLACEHOLDER_COLOR)
        frame.paste(Image.blend(frame, shade, 0.8))
        font = load_font(max(14, frame.width // 36))
        color = (239, 68, 68) if overlay == "error" else (255, 255, 255)
        ImageDraw.Draw(frame).text(
            (frame.width / 2, frame.height / 2),
            labels.get(overlay, overlay),
            font=font,
            fill=color,
            anchor="mm",
        )

    def _draw_progress(self, frame: Image.Image, progress: float) -> None:
        width, height = frame.size
        draw = ImageDraw.Draw(frame)
        top = height - PROGRESS_BAR_HEIGHT
        draw.rectangle((0, top, width, height), fill=PROGRESS_TRACK_COLOR)
        filled = round(width * min(100.0, max(0.0, progress)) / 100)
        if filled > 0:
            draw.rectangle((0, top, filled - 1, height), fill=PROGRESS_COLOR)


@dataclass(frozen=True)
class SceneView:
    """What the preview shows for the active scene."""

    index: int
    total: int
    progress: float
    is_playing: bool
    overlay: Optional[str]
    narration: str


class PreviewSession:
    """Composes the preview from a timeline, its players and a live surface.

    Use as an async context manager: entering mounts the playback context
    and scene clock, leaving disposes them.
    """

    def __init__(
        self,
        scenes: Sequence[Scene],
        aspect_ratio: str = "9:16",
        effect: Union[TransitionEffect, str] = TransitionEffect.FADE,
        background_music: Optional[str] = None,
        clock: Optional[FrameClock] = None,
        output: Optional[AudioOutput] = None,
        duration_probe: Optional[Callable[[str], float]] = None,
        style: Optional[SubtitleStyle] = None,
    ) -> None:
        self.clock = clock or RealtimeClock(config.fps)
        self.timeline = Timeline(scenes)
        width, height = dimensions_for(aspect_ratio)
        self.surface = PreviewSurface(width, height, effect, style)
        self._background_music = background_music
        self._output = output
        self._probe = duration_probe
        self._visuals: Dict[int, Visual] = {}
        self.errors: Dict[int, AssetLoadError] = {}
        self.context: Optional[PlaybackContext] = None
        self.scene_clock: Optional[SceneClock] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._active_index: Optional[int] = None
        self._load_tasks: Set[asyncio.Task] = set()

    async def __aenter__(self) -> "PreviewSession":
        self.mount()
        await self.load_visuals()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.dispose()

    def mount(self) -> None:
        if self.context is not None:
            return
        self.context = PlaybackContext(self.clock, self._output, duration_probe=self._probe)
        self.scene_clock = SceneClock(self.timeline, self.context)
        self.context.set_background_music(self._background_music, self.timeline.is_playing)
        self._unsubscribe = self.timeline.subscribe(lambda _: self._sync_visuals())
        self._sync_visuals()

    def dispose(self) -> None:
        for task in self._load_tasks:
            task.cancel()
        self._load_tasks.clear()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self.scene_clock is not None:
            self.scene_clock.dispose()
            self.scene_clock = None
        if self.context is not None:
            self.context.dispose()
            self.context = None
        for visual in self._visuals.values():
            visual.close()
        self._visuals.clear()

    @property
    def progress(self) -> float:
        return self.scene_clock.progress if self.scene_clock else 0.0

    @property
    def is_playing(self) -> bool:
        return self.timeline.is_playing

    @property
    def current_index(self) -> int:
        return self.timeline.current_index

    async def load_visuals(self) -> None:
        """Load every scene visual that is not loaded yet; failures stay per scene."""
        for index in range(len(self.timeline)):
            await self._load_visual(index)
        self._sync_visuals()

    async def _load_visual(self, index: int) -> None:
        ref = self.timeline.scenes[index].visual
        if index in self._visuals or ref is None:
            return
        try:
            visual = await asyncio.to_thread(load_visual, ref)
        except AssetLoadError as e:
            logger.error(f"Error loading visual for scene {index + 1}: {e}")
            self.errors[index] = e
            return

        # The scene may have been replaced while the load was in flight
        if self.timeline.scenes[index].visual != ref or index in self._visuals:
            visual.close()
            return
        self._visuals[index] = visual
        self.errors.pop(index, None)

    async def _reload_visual(self, index: int) -> None:
        await self._load_visual(index)
        self._sync_visuals()

    def play(self) -> None:
        if len(self.timeline):
            self.timeline.set_playing(True)

    def pause(self) -> None:
        self.timeline.set_playing(False)

    def toggle(self) -> None:
        if self.timeline.is_playing:
            self.pause()
        else:
            self.play()

    def skip_next(self) -> None:
        self.timeline.navigate(self.timeline.current_index + 1)

    def skip_previous(self) -> None:
        self.timeline.navigate(self.timeline.current_index - 1)

    def seek(self, index: int) -> None:
        self.timeline.navigate(index)

    def set_effect(self, effect: Union[TransitionEffect, str]) -> None:
        self.surface.set_effect(effect)
        self._sync_visuals()

    def set_background_music(self, src: Optional[str]) -> None:
        self._background_music = src
        if self.context is not None:
            self.context.set_background_music(src, self.timeline.is_playing)

    def update_scene(self, index: int, scene: Scene) -> Optional[asyncio.Task]:
        """Apply an external update to a scene (new audio, new visual, status).

        A changed visual is reloaded in the background while the session is
        mounted; the returned task completes once it is in place.
        """
        previous = self.timeline.scenes[index]
        changed = previous.visual != scene.visual
        if changed:
            if index in self._visuals:
                self._visuals.pop(index).close()
            self.errors.pop(index, None)
        self.timeline.update_scene(index, scene)

        if changed and scene.visual is not None and self.context is not None:
            task = asyncio.get_running_loop().create_task(self._reload_visual(index))
            self._load_tasks.add(task)
            task.add_done_callback(self._load_tasks.discard)
            return task
        return None

    def view(self) -> SceneView:
        scene = self.timeline.current_scene
        index = self.timeline.current_index
        return SceneView(
            index=index,
            total=len(self.timeline),
            progress=self.progress,
            is_playing=self.timeline.is_playing,
            overlay=self._overlay_for(index, scene),
            narration=scene.narration if scene else "",
        )

    def render_frame(self, now: Optional[float] = None) -> Image.Image:
        """Render the preview as it looks at clock time `now`."""
        now = self.clock.now() if now is None else now
        view = self.view()
        return self.surface.render(
            self._visuals,
            now,
            subtitle=view.narration,
            progress=view.progress,
            overlay=view.overlay,
            indicator=f"SCENE {view.index + 1}/{view.total}" if view.total else None,
        )

    async def run(
        self,
        on_frame: Optional[Callable[[Image.Image, SceneView], None]] = None,
        until_stopped: bool = True,
    ) -> None:
        """Render once per frame until playback stops (or forever)."""
        while True:
            frame = self.render_frame()
            if on_frame is not None:
                on_frame(frame, self.view())
            if until_stopped and not self.timeline.is_playing:
                return
            await self.clock.next_frame()

    def _overlay_for(self, index: int, scene: Optional[Scene]) -> Optional[str]:
        if scene is None:
            return None
        if scene.is_generating_video:
            return "animating"
        if index in self.errors:
            return "error"
        if index not in self._visuals:
            return "error" if scene.status == SceneStatus.ERROR else "loading"
        return None

    def _sync_visuals(self) -> None:
        """Keep layer targets and loop-video play state in line with the timeline."""
        now = self.clock.now()
        index = self.timeline.current_index
        self.surface.update(len(self.timeline), index, now)

        index_changed = index != self._active_index
        self._active_index = index
        for i, visual in self._visuals.items():
            if not isinstance(visual, LoopVideo):
                continue
            if i == index and index_changed:
                visual.rewind(now)
            if i == index and self.timeline.is_playing:
                visual.play(now)
            else:
                visual.pause(now)
