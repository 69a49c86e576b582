"""Per-scene progress and sequencing for the interactive preview."""

import asyncio
import logging
from typing import Dict, Optional, Tuple

from ..errors import PlaybackBlockedError, StoryReelError
from .players import PlaybackContext, Subscription
from .timeline import Timeline

logger = logging.getLogger(__name__)

FALLBACK_DURATION = 5.0  # seconds shown for scenes without narration


class SceneClock:
    """Drives progress of the active scene and advances the timeline.

    Audio-driven when the active scene has usable narration, otherwise a
    wall-clock fallback recomputed once per frame. Exactly one player
    subscription or one fallback tick task is alive at a time, and both are
    torn down synchronously whenever the active scene or playing state
    changes.
    """

    def __init__(
        self,
        timeline: Timeline,
        context: PlaybackContext,
        fallback_duration: float = FALLBACK_DURATION,
    ) -> None:
        self.timeline = timeline
        self.context = context
        self.clock = context.clock
        self.fallback_duration = fallback_duration
        self._progress = 0.0
        self._anchor: Optional[float] = None
        self._subscription: Optional[Subscription] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._index: Optional[int] = None
        self._key: Optional[Tuple] = None
        self._syncing = False
        self._dirty = False
        self.errors: Dict[int, StoryReelError] = {}
        self._unsubscribe = timeline.subscribe(lambda _: self.sync())
        self.sync()

    @property
    def progress(self) -> float:
        """Progress of the active scene in [0, 100]."""
        return self._progress

    @property
    def mode(self) -> Optional[str]:
        """'audio', 'fallback', or None when idle."""
        if self._subscription is not None:
            return "audio"
        if self._tick_task is not None:
            return "fallback"
        return None

    def sync(self) -> None:
        """Reconcile clock state with the timeline.

        Re-entrant calls (a handler changing the timeline while a sync is
        running) are folded into the running sync.
        """
        if self._syncing:
            self._dirty = True
            return
        self._syncing = True
        try:
            while True:
                self._dirty = False
                self._apply()
                if not self._dirty:
                    break
        finally:
            self._syncing = False

    def dispose(self) -> None:
        self._unsubscribe()
        self._teardown()
        self.context.narration.pause()
        self._key = None

    def _apply(self) -> None:
        timeline = self.timeline
        scene = timeline.current_scene
        self.context.sync_music(timeline.is_playing)

        key = None
        if scene is not None:
            key = (
                timeline.current_index,
                scene.has_usable_audio,
                timeline.is_playing,
                scene.audio.source if scene.audio else None,
            )
        if key == self._key:
            return

        index_changed = self._index != timeline.current_index
        self._teardown()
        self._key = key
        if index_changed:
            self._index = timeline.current_index
            self._set_progress(0.0)
            self._anchor = None

        if scene is None:
            self.context.narration.pause()
            return

        if scene.has_usable_audio:
            self._start_audio(scene.audio.source, scene.audio.duration, index_changed)
        else:
            self._start_fallback()

    def _teardown(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        task, self._tick_task = self._tick_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _start_audio(self, src: str, duration: Optional[float], index_changed: bool) -> None:
        narration = self.context.narration
        self._anchor = None
        swapped = narration.set_source(src, duration)
        if index_changed and not swapped:
            narration.rewind()

        self._subscription = narration.subscribe(
            on_time_update=self._on_time_update,
            on_ended=self._complete_scene,
            on_error=self._on_audio_error,
        )

        if not self.timeline.is_playing:
            narration.pause()
            return

        try:
            narration.play()
        except PlaybackBlockedError as e:
            logger.warning(f"Playback prevented: {e}")
            self.timeline.set_playing(False)

    def _start_fallback(self) -> None:
        self.context.narration.pause()
        if not self.timeline.is_playing:
            self._anchor = None
            return
        self._tick_task = asyncio.get_running_loop().create_task(self._run_fallback())

    async def _run_fallback(self) -> None:
        while True:
            now = self.clock.now()
            if self._anchor is None:
                # Resume from the already-elapsed fraction
                self._anchor = now - self._progress / 100 * self.fallback_duration

            elapsed = now - self._anchor
            self._set_progress(elapsed / self.fallback_duration * 100)

            if self._progress >= 100:
                self._anchor = None
                self._tick_task = None
                self._complete_scene()
                return

            await self.clock.next_frame()

    def _on_time_update(self, position: float, duration: float) -> None:
        if duration > 0:
            self._set_progress(position / duration * 100)

    def _on_audio_error(self, error: StoryReelError) -> None:
        logger.error(f"Audio playback error on scene {self.timeline.current_index + 1}: {error}")
        self.errors[self.timeline.current_index] = error
        self.timeline.set_playing(False)

    def _complete_scene(self) -> None:
        """Advance to the next scene, or stop and rewind after the last one."""
        self._set_progress(0.0)
        self._anchor = None
        if not self.timeline.is_last:
            self.timeline.advance()
        else:
            self.context.stop_music()
            self.timeline.rewind()

    def _set_progress(self, value: float) -> None:
        self._progress = min(100.0, max(0.0, value))
