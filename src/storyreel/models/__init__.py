"""Data models for storyreel."""

from .scene import Scene, SceneStatus, VisualRef, AudioRef, ready_scenes
from .manifest import Manifest, AspectRatio, TransitionEffect, dimensions_for

__all__ = [
    "Scene",
    "SceneStatus",
    "VisualRef",
    "AudioRef",
    "ready_scenes",
    "Manifest",
    "AspectRatio",
    "TransitionEffect",
    "dimensions_for",
]
