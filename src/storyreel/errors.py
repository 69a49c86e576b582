"""Exception hierarchy for playback and export."""

from typing import Optional


class StoryReelError(Exception):
    """Base class for storyreel errors."""


class AssetLoadError(StoryReelError):
    """A scene's visual or audio asset could not be fetched or decoded.

    Scene-local and non-fatal: the export pipeline skips the scene and the
    preview shows an error overlay on it.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.source = source
        self.kind = kind


class PlaybackBlockedError(StoryReelError):
    """The runtime refused to start playback (autoplay or permission denial)."""


class CaptureSetupError(StoryReelError):
    """The capture stream, container or recorder could not be set up."""


class EmptyInputError(StoryReelError):
    """Export was called without any scenes to render."""


class ExportInProgressError(StoryReelError):
    """An export session is already running on this exporter."""
