"""Ordered scenes with one active index and a master playing flag."""

import logging
from typing import Callable, List, Optional, Sequence

from ..models.scene import Scene

logger = logging.getLogger(__name__)

Listener = Callable[["Timeline"], None]


class Timeline:
    """Index-addressed scene sequence shared by the preview components.

    Listeners are notified synchronously after every change, once per
    change even when index and playing flag move together.
    """

    def __init__(self, scenes: Sequence[Scene] = ()) -> None:
        self._scenes: List[Scene] = list(scenes)
        self._index = 0
        self._playing = False
        self._listeners: List[Listener] = []

    @property
    def scenes(self) -> List[Scene]:
        return list(self._scenes)

    def __len__(self) -> int:
        return len(self._scenes)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def current_scene(self) -> Optional[Scene]:
        if not self._scenes:
            return None
        return self._scenes[self._index]

    @property
    def is_last(self) -> bool:
        return self._index >= len(self._scenes) - 1

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_playing(self, playing: bool) -> None:
        if playing and not self._scenes:
            return
        self._update(playing=playing)

    def seek(self, index: int) -> None:
        """Jump to a scene without touching the playing flag.

        Raises:
            IndexError: If index is out of range.
        """
        if not 0 <= index < len(self._scenes):
            raise IndexError(f"Scene index {index} out of range (0-{len(self._scenes) - 1})")
        self._update(index=index)

    def advance(self) -> None:
        """Move to the next scene after the current one completes."""
        if not self.is_last:
            self._update(index=self._index + 1)

    def rewind(self) -> None:
        """Stop playback and return to the first scene."""
        self._update(index=0, playing=False)

    def navigate(self, index: int) -> None:
        """Explicit navigation: pause and jump, clamping into range."""
        if not self._scenes:
            return
        index = max(0, min(index, len(self._scenes) - 1))
        self._update(index=index, playing=False)

    def update_scene(self, index: int, scene: Scene) -> None:
        """Replace a scene's record, e.g. after a generation step finished."""
        self._scenes[index] = scene
        self._notify()

    def set_scenes(self, scenes: Sequence[Scene]) -> None:
        self._scenes = list(scenes)
        if not self._scenes:
            self._index = 0
            self._playing = False
        else:
            self._index = min(self._index, len(self._scenes) - 1)
        self._notify()

    def _update(self, index: Optional[int] = None, playing: Optional[bool] = None) -> None:
        changed = False
        if index is not None and index != self._index:
            self._index = index
            changed = True
        if playing is not None and playing != self._playing:
            self._playing = playing
            changed = True
        if changed:
            self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
