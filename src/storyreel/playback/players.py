"""Preview audio players and the context that owns them."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from ..config import config
from ..editor.audio import get_audio_duration
from ..errors import AssetLoadError, PlaybackBlockedError, StoryReelError
from .clock import FrameClock

logger = logging.getLogger(__name__)

TimeUpdateHandler = Callable[[float, float], None]
EndedHandler = Callable[[], None]
ErrorHandler = Callable[[StoryReelError], None]


class AudioOutput(Protocol):
    """Where a player's sound goes. May refuse to start playback."""

    def start(self, player: "TrackPlayer") -> None:
        """Begin output for a player.

        Raises:
            PlaybackBlockedError: If the runtime denies playback.
        """
        ...

    def stop(self, player: "TrackPlayer") -> None:
        ...


class NullOutput:
    """Headless output that accepts every playback request."""

    def start(self, player: "TrackPlayer") -> None:
        pass

    def stop(self, player: "TrackPlayer") -> None:
        pass


@dataclass
class Subscription:
    """Cancellation token for a set of player event handlers."""

    on_time_update: Optional[TimeUpdateHandler] = None
    on_ended: Optional[EndedHandler] = None
    on_error: Optional[ErrorHandler] = None
    active: bool = True

    def cancel(self) -> None:
        self.active = False


class TrackPlayer:
    """A persistent audio player whose position follows a frame clock.

    Publishes time updates once per frame while playing, `ended` when a
    non-looping track reaches its end, and `error` when the source cannot
    be resolved.
    """

    def __init__(
        self,
        clock: FrameClock,
        output: Optional[AudioOutput] = None,
        loop: bool = False,
        volume: float = 1.0,
        name: str = "track",
        duration_probe: Optional[Callable[[str], float]] = None,
    ) -> None:
        self._clock = clock
        self._output = output or NullOutput()
        self._probe = duration_probe or get_audio_duration
        self.loop = loop
        self.volume = volume
        self.name = name
        self._src: Optional[str] = None
        self._duration: Optional[float] = None
        self._position = 0.0
        self._anchor = 0.0
        self._playing = False
        self._ended = False
        self._task: Optional[asyncio.Task] = None
        self._subscriptions: list[Subscription] = []

    @property
    def src(self) -> Optional[str]:
        return self._src

    @property
    def duration(self) -> Optional[float]:
        return self._duration

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def current_time(self) -> float:
        if not self._playing:
            return self._position
        position = self._clock.now() - self._anchor
        if self._duration:
            if self.loop:
                return position % self._duration
            return min(position, self._duration)
        return position

    def set_source(self, src: str, duration: Optional[float] = None) -> bool:
        """Point the player at a new source.

        The player is left untouched when the source is unchanged, so a
        running track does not reload.

        Returns:
            True if the source was swapped.
        """
        if src == self._src:
            return False
        self.pause()
        self._src = src
        self._duration = duration
        self._position = 0.0
        self._ended = False
        logger.debug(f"{self.name}: source set to {src[:80]}")
        return True

    def subscribe(
        self,
        on_time_update: Optional[TimeUpdateHandler] = None,
        on_ended: Optional[EndedHandler] = None,
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        subscription = Subscription(on_time_update, on_ended, on_error)
        self._subscriptions.append(subscription)
        return subscription

    def play(self) -> None:
        """Start or resume playback.

        Raises:
            PlaybackBlockedError: If the output refuses to play.
            RuntimeError: If no source is set or no event loop is running.
        """
        if self._playing:
            return
        if self._src is None:
            raise RuntimeError(f"{self.name}: no source to play")
        loop = asyncio.get_running_loop()

        self._output.start(self)
        if self._ended:
            self._position = 0.0
            self._ended = False
        self._anchor = self._clock.now() - self._position
        self._playing = True
        self._task = loop.create_task(self._run())

    def pause(self) -> None:
        if not self._playing:
            return
        self._position = self.current_time
        self._playing = False
        self._stop_task()
        self._output.stop(self)

    def rewind(self) -> None:
        self._position = 0.0
        self._ended = False
        self._anchor = self._clock.now()

    def dispose(self) -> None:
        self.pause()
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions.clear()
        self._src = None

    def _stop_task(self) -> None:
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def _emit_time_update(self, position: float) -> None:
        for subscription in list(self._subscriptions):
            if subscription.active and subscription.on_time_update:
                subscription.on_time_update(position, self._duration or 0.0)

    def _emit_ended(self) -> None:
        for subscription in list(self._subscriptions):
            if subscription.active and subscription.on_ended:
                subscription.on_ended()

    def _emit_error(self, error: StoryReelError) -> None:
        for subscription in list(self._subscriptions):
            if subscription.active and subscription.on_error:
                subscription.on_error(error)

    async def _run(self) -> None:
        me = asyncio.current_task()
        src = self._src

        if self._duration is None:
            try:
                duration = await asyncio.to_thread(self._probe, src)
            except AssetLoadError as e:
                logger.error(f"{self.name}: failed to load {src[:80]}: {e}")
                self.pause()
                self._emit_error(e)
                return
            if self._task is not me or src != self._src:
                return
            self._duration = duration
            # Position starts counting once the track is loaded
            self._anchor = self._clock.now() - self._position

        while self._playing and self._task is me:
            await self._clock.next_frame()
            if not self._playing or self._task is not me:
                return

            position = self._clock.now() - self._anchor
            if not self.loop and position >= self._duration:
                self._position = self._duration
                self._playing = False
                self._ended = True
                self._task = None
                self._output.stop(self)
                self._emit_time_update(self._duration)
                self._emit_ended()
                return

            self._emit_time_update(self.current_time)


class PlaybackContext:
    """Owns the preview's narration and background-music players.

    Create it when a preview mounts and dispose it when the preview goes
    away; the export path never touches these players.
    """

    def __init__(
        self,
        clock: FrameClock,
        output: Optional[AudioOutput] = None,
        music_volume: Optional[float] = None,
        duration_probe: Optional[Callable[[str], float]] = None,
    ) -> None:
        self.clock = clock
        self._output = output
        self._probe = duration_probe
        self.music_volume = config.music_volume if music_volume is None else music_volume
        self.narration = TrackPlayer(
            clock, output, name="narration", duration_probe=duration_probe
        )
        self._music: Optional[TrackPlayer] = None
        self._music_subscription: Optional[Subscription] = None
        self.disposed = False

    @property
    def music(self) -> Optional[TrackPlayer]:
        return self._music

    def set_background_music(self, src: Optional[str], playing: bool = False) -> None:
        """Select background music, replacing the current track if it differs."""
        if self._music is not None and self._music.src == src:
            return

        if self._music is not None:
            self._music.dispose()
            self._music = None

        if src:
            music = TrackPlayer(
                self.clock,
                self._output,
                loop=True,
                volume=self.music_volume,
                name="music",
                duration_probe=self._probe,
            )
            music.set_source(src)
            self._music_subscription = music.subscribe(on_error=self._on_music_error)
            self._music = music
            self.sync_music(playing)

    def sync_music(self, playing: bool) -> None:
        """Mirror the master playing flag on the background music."""
        if self._music is None:
            return
        if playing:
            try:
                self._music.play()
            except PlaybackBlockedError as e:
                logger.warning(f"Background music autoplay blocked: {e}")
        else:
            self._music.pause()

    def stop_music(self) -> None:
        if self._music is not None:
            self._music.pause()
            self._music.rewind()

    def dispose(self) -> None:
        if self.disposed:
            return
        self.narration.dispose()
        if self._music is not None:
            self._music.dispose()
            self._music = None
        self.disposed = True

    def __enter__(self) -> "PlaybackContext":
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    def _on_music_error(self, error: StoryReelError) -> None:
        logger.warning(f"Background music unavailable: {error}")
