"""Real-time export of a scene list into one encoded file."""

from .recorder import (
    CONTAINERS,
    CaptureStream,
    ContainerFormat,
    EncodedBlob,
    MediaRecorder,
    SceneTiming,
    available_encoders,
    is_type_supported,
    negotiate_container,
)
from .pipeline import Exporter, ExportSession, export_scenes, visible_duration

__all__ = [
    "CONTAINERS",
    "CaptureStream",
    "ContainerFormat",
    "EncodedBlob",
    "MediaRecorder",
    "SceneTiming",
    "available_encoders",
    "is_type_supported",
    "negotiate_container",
    "Exporter",
    "ExportSession",
    "export_scenes",
    "visible_duration",
]
