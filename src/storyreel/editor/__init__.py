"""Asset loading, compositing and audio mixing."""

from .assets import (
    AudioBuffer,
    StillImage,
    LoopVideo,
    Visual,
    read_source,
    load_image,
    load_video,
    load_visual,
    load_audio,
    pcm_to_wav,
    wav_data_uri,
)
from .compositor import (
    Placement,
    Surface,
    cover_fit,
    draw_cover,
    render,
)
from .overlays import (
    SubtitleStyle,
    SubtitleLayout,
    STYLES,
    layout_subtitle,
    wrap_words,
    draw_subtitle,
    get_style,
    register_style,
)
from .transitions import (
    LayerPresentation,
    TRANSITION_DURATIONS_MS,
    presentation,
)
from .audio import (
    BufferSource,
    StreamDestination,
    MixingGraph,
    write_audio,
    get_audio_duration,
)

__all__ = [
    # Assets
    "AudioBuffer",
    "StillImage",
    "LoopVideo",
    "Visual",
    "read_source",
    "load_image",
    "load_video",
    "load_visual",
    "load_audio",
    "pcm_to_wav",
    "wav_data_uri",
    # Compositor
    "Placement",
    "Surface",
    "cover_fit",
    "draw_cover",
    "render",
    # Overlays
    "SubtitleStyle",
    "SubtitleLayout",
    "STYLES",
    "layout_subtitle",
    "wrap_words",
    "draw_subtitle",
    "get_style",
    "register_style",
    # Transitions
    "LayerPresentation",
    "TRANSITION_DURATIONS_MS",
    "presentation",
    # Audio
    "BufferSource",
    "StreamDestination",
    "MixingGraph",
    "write_audio",
    "get_audio_duration",
]
