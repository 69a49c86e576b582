"""Scene data model."""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class SceneStatus(str, Enum):
    """Lifecycle status set by the generation pipeline."""
    PENDING = "pending"
    LOADING = "loading"
    COMPLETED = "completed"
    ERROR = "error"


class VisualRef(BaseModel):
    """Reference to a scene visual: a still image or a looping clip."""

    kind: Literal["image", "video"] = Field(..., description="Visual type")
    source: str = Field(..., description="Path, file/http(s) URL or data URI")

    class Config:
        """Pydantic config."""
        frozen = True


class AudioRef(BaseModel):
    """Reference to a synthesized narration track."""

    source: str = Field(..., description="Path, file/http(s) URL or data URI")
    duration: Optional[float] = Field(
        None, description="Duration hint in seconds, if known", gt=0
    )

    class Config:
        """Pydantic config."""
        frozen = True


class Scene(BaseModel):
    """Represents a single scene in the timeline."""

    id: str = Field(..., description="Unique scene identifier")
    narration: str = Field(default="", description="Narration and subtitle text")
    visual: Optional[VisualRef] = Field(None, description="Scene visual")
    audio: Optional[AudioRef] = Field(None, description="Narration audio")
    status: SceneStatus = Field(default=SceneStatus.PENDING, description="Generation status")
    is_regenerating_audio: bool = Field(default=False)
    is_regenerating_image: bool = Field(default=False)
    is_generating_video: bool = Field(default=False)

    class Config:
        """Pydantic config."""
        frozen = False

    @model_validator(mode="after")
    def _completed_has_visual(self) -> "Scene":
        if self.status == SceneStatus.COMPLETED and self.visual is None:
            raise ValueError(f"Scene {self.id} is completed but has no visual")
        return self

    @property
    def is_ready(self) -> bool:
        """True when the scene can be exported (visual and audio present)."""
        return self.visual is not None and self.audio is not None

    @property
    def has_usable_audio(self) -> bool:
        """True when narration can drive the scene clock."""
        return self.audio is not None and not self.is_regenerating_audio


def ready_scenes(scenes: list[Scene]) -> list[Scene]:
    """Filter scenes down to those eligible for export."""
    return [scene for scene in scenes if scene.is_ready]
