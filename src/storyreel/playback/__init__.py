"""Interactive preview playback."""

from .clock import FrameClock, RealtimeClock, SimulatedClock
from .players import AudioOutput, NullOutput, PlaybackContext, TrackPlayer
from .timeline import Timeline
from .scene_clock import SceneClock, FALLBACK_DURATION
from .preview import PreviewSession, PreviewSurface, SceneView

__all__ = [
    "FrameClock",
    "RealtimeClock",
    "SimulatedClock",
    "AudioOutput",
    "NullOutput",
    "PlaybackContext",
    "TrackPlayer",
    "Timeline",
    "SceneClock",
    "FALLBACK_DURATION",
    "PreviewSession",
    "PreviewSurface",
    "SceneView",
]
