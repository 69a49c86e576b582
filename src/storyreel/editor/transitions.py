"""Transition mapping for preview layers."""

from dataclasses import dataclass
from typing import Union

from ..models.manifest import TransitionEffect

# Duration of the surface-side animation per effect
TRANSITION_DURATIONS_MS = {
    TransitionEffect.NONE: 0,
    TransitionEffect.FADE: 700,
    TransitionEffect.ZOOM: 1000,
    TransitionEffect.SLIDE: 500,
}

INACTIVE_ZOOM_SCALE = 1.1


@dataclass(frozen=True)
class LayerPresentation:
    """Target presentation state of one visual layer.

    `offset_x` is a fraction of the surface width: -1.0 is fully off-screen
    on the exited side, +1.0 fully off-screen on the entering side.
    """

    visible: bool
    opacity: float = 1.0
    scale: float = 1.0
    offset_x: float = 0.0
    z_index: int = 0
    duration_ms: int = 0


def presentation(
    index: int,
    active_index: int,
    effect: Union[TransitionEffect, str] = TransitionEffect.FADE
) -> LayerPresentation:
    """Map a layer to its presentation state relative to the active scene.

    Args:
        index: Index of the layer's scene.
        active_index: Index of the active scene.
        effect: Transition effect.

    Returns:
        LayerPresentation for the layer.

    Raises:
        ValueError: If effect is unknown.
    """
    effect = TransitionEffect(effect)
    active = index == active_index
    z_index = 10 if active else 0
    duration_ms = TRANSITION_DURATIONS_MS[effect]

    if effect == TransitionEffect.NONE:
        # Inactive layers are not rendered at all
        return LayerPresentation(visible=active, z_index=z_index)

    if effect == TransitionEffect.FADE:
        return LayerPresentation(
            visible=True,
            opacity=1.0 if active else 0.0,
            z_index=z_index,
            duration_ms=duration_ms,
        )

    if effect == TransitionEffect.ZOOM:
        return LayerPresentation(
            visible=True,
            opacity=1.0 if active else 0.0,
            scale=1.0 if active else INACTIVE_ZOOM_SCALE,
            z_index=z_index,
            duration_ms=duration_ms,
        )

    if active:
        offset_x = 0.0
    elif index < active_index:
        offset_x = -1.0
    else:
        offset_x = 1.0
    return LayerPresentation(
        visible=True,
        offset_x=offset_x,
        z_index=z_index,
        duration_ms=duration_ms,
    )
