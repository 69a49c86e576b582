"""Tests for frame composition, subtitles and transitions."""

import pytest
from PIL import Image

from storyreel.editor.assets import (
    LoopVideo,
    StillImage,
    load_image,
    load_video,
    load_visual,
    read_source,
    wav_data_uri,
)
from storyreel.editor.compositor import Surface, cover_fit, render, source_crop_box
from storyreel.editor.overlays import (
    STYLES,
    SubtitleStyle,
    font_size_for,
    get_style,
    layout_subtitle,
    register_style,
    wrap_words,
)
from storyreel.editor.transitions import INACTIVE_ZOOM_SCALE, presentation
from storyreel.errors import AssetLoadError
from storyreel.models import TransitionEffect, VisualRef

from conftest import is_blue, is_red


def char_width(text: str) -> float:
    """Monospace measure: 10 units per character."""
    return len(text) * 10.0


class TestCoverFit:
    """Tests for cover-fit scaling."""

    @pytest.mark.parametrize(
        "src,dst",
        [
            ((1920, 1080), (720, 1280)),
            ((720, 1280), (1280, 720)),
            ((500, 500), (1080, 1080)),
            ((333, 777), (720, 1280)),
        ],
    )
    def test_covers_target_and_keeps_aspect(self, src, dst):
        placement = cover_fit(*src, *dst)
        assert placement.width >= dst[0] - 1e-6
        assert placement.height >= dst[1] - 1e-6
        assert placement.width / placement.height == pytest.approx(src[0] / src[1])

    def test_overflow_is_centered(self):
        """Landscape into portrait overflows horizontally, split evenly."""
        placement = cover_fit(1920, 1080, 720, 1280)
        assert placement.y == pytest.approx(0)
        assert placement.x == pytest.approx((720 - placement.width) / 2)
        assert placement.x < 0

    def test_rejects_zero_dimensions(self):
        with pytest.raises(ValueError):
            cover_fit(0, 100, 720, 1280)

    def test_crop_box_is_central_strip(self):
        left, top, right, bottom = source_crop_box((200, 100), (100, 100))
        assert (left, top, right, bottom) == pytest.approx((50, 0, 150, 100))


class TestWrapWords:
    """Tests for greedy word wrapping."""

    def test_lines_fit_max_width(self):
        text = "the quick brown fox jumps over the lazy dog again and again"
        lines = wrap_words(text, 100, char_width)
        assert all(char_width(line) <= 100 for line in lines)
        assert " ".join(lines) == text

    def test_oversized_word_sits_alone(self):
        lines = wrap_words("a supercalifragilistic word", 100, char_width)
        assert lines == ["a", "supercalifragilistic", "word"]

    def test_empty_text(self):
        assert wrap_words("   ", 100, char_width) == []


class TestSubtitleLayout:
    """Tests for caption geometry."""

    def test_font_size_scales_with_width(self):
        style = STYLES["default"]
        assert font_size_for(720, style) == 18
        assert font_size_for(200, style) == 14

    def test_box_is_centered_above_bottom_margin(self):
        layout = layout_subtitle("hello world", 720, 1280, measure=char_width)
        x, y, w, h = layout.box
        assert x == pytest.approx((720 - w) / 2)
        # Bottom margin is max(20, 3% of height)
        assert y + h == pytest.approx(1280 - 38.4)
        assert layout.lines == ("hello world",)
        assert w == pytest.approx(110 + 2 * 0.8 * 18)

    def test_long_text_wraps_within_ninety_percent(self):
        text = "word " * 40
        layout = layout_subtitle(text, 720, 1280, measure=char_width)
        assert len(layout.lines) > 1
        assert all(char_width(line) <= 720 * 0.9 for line in layout.lines)
        assert layout.box[3] == pytest.approx(
            len(layout.lines) * layout.line_height + 2 * layout.padding_y
        )

    def test_line_positions_step_by_line_height(self):
        layout = layout_subtitle("word " * 40, 720, 1280, measure=char_width)
        ys = [y for _, y in layout.line_positions]
        assert ys[1] - ys[0] == pytest.approx(layout.line_height)

    def test_blank_text_has_no_layout(self):
        assert layout_subtitle("  ", 720, 1280, measure=char_width) is None

    def test_style_registry(self):
        register_style("tiny", SubtitleStyle(font_scale=0.01))
        assert get_style("tiny").font_scale == 0.01
        with pytest.raises(ValueError):
            get_style("missing")


class TestRender:
    """Tests for full-frame composition."""

    def test_still_image_covers_surface(self, png_path):
        surface = Surface(100, 100)
        render(surface, load_image(str(png_path)), None)
        # The central strip of a red|blue image is visible
        assert surface.image.getpixel((10, 50)) == (255, 0, 0)
        assert surface.image.getpixel((90, 50)) == (0, 0, 255)

    def test_no_visual_is_black(self):
        surface = Surface(64, 64)
        surface.image.paste((255, 255, 255), (0, 0, 64, 64))
        render(surface, None, None)
        assert surface.image.getpixel((32, 32)) == (0, 0, 0)

    def test_subtitle_darkens_box(self):
        surface = Surface(720, 1280)
        visual = StillImage(Image.new("RGB", (10, 10), (255, 255, 255)))
        render(surface, visual, "A storm gathers over the bay")

        layout = layout_subtitle(
            "A storm gathers over the bay", 720, 1280,
        )
        x, y, w, h = layout.box
        inside = surface.image.getpixel((int(x + 3), int(y + h / 2)))
        assert inside[0] < 200
        assert surface.image.getpixel((5, 5)) == (255, 255, 255)

    def test_to_array_shape(self):
        surface = Surface(1280, 720)
        assert surface.to_array().shape == (720, 1280, 3)


class TestAssets:
    """Tests for source reading."""

    def test_data_uri(self, wav_bytes):
        assert read_source(wav_data_uri(wav_bytes)) == wav_bytes

    def test_file_url(self, png_path):
        assert read_source(png_path.as_uri()) == png_path.read_bytes()

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(AssetLoadError) as exc_info:
            load_image(str(tmp_path / "missing.png"))
        assert exc_info.value.kind == "image"

    def test_undecodable_image_raises(self, tmp_path):
        path = tmp_path / "bad.png"
        path.write_bytes(b"not an image")
        with pytest.raises(AssetLoadError):
            load_image(str(path))


class TestLoopVideo:
    """Tests for looping clip visuals."""

    def test_metadata(self, mp4_path):
        video = load_video(str(mp4_path))
        try:
            assert video.size == (64, 48)
            assert video.duration == pytest.approx(2.0, abs=0.1)
            assert video.muted and video.loop
            assert not video.is_playing
        finally:
            video.close()

    def test_frames_follow_clock_and_loop(self, mp4_path):
        video = load_visual(VisualRef(kind="video", source=str(mp4_path)))
        try:
            assert isinstance(video, LoopVideo)
            video.play(10.0)
            assert is_red(video.frame(10.5).getpixel((32, 24)))
            assert is_blue(video.frame(11.5).getpixel((32, 24)))
            assert video.position(12.5) == pytest.approx(0.5, abs=0.1)
            assert is_red(video.frame(12.5).getpixel((32, 24)))
        finally:
            video.close()

    def test_pause_holds_position(self, mp4_path):
        video = load_video(str(mp4_path))
        try:
            video.play(0.0)
            video.pause(1.5)
            assert video.position(5.0) == pytest.approx(1.5)
            assert is_blue(video.frame(5.0).getpixel((32, 24)))

            video.play(8.0)
            assert video.position(8.2) == pytest.approx(1.7)

            video.rewind(9.0)
            assert video.position(9.0) == pytest.approx(0.0)
        finally:
            video.close()

    def test_unreadable_video_raises(self, tmp_path):
        path = tmp_path / "bad.mp4"
        path.write_bytes(b"not a video")
        with pytest.raises(AssetLoadError) as exc_info:
            load_video(str(path))
        assert exc_info.value.kind == "video"


class TestTransitions:
    """Tests for layer presentation mapping."""

    @pytest.mark.parametrize("effect", list(TransitionEffect))
    def test_pure(self, effect):
        assert presentation(1, 2, effect) == presentation(1, 2, effect)

    @pytest.mark.parametrize("active", [0, 1, 2, 3])
    def test_none_shows_exactly_one_layer(self, active):
        states = [presentation(i, active, "none") for i in range(4)]
        assert sum(s.visible for s in states) == 1
        assert states[active].visible

    @pytest.mark.parametrize("effect", list(TransitionEffect))
    def test_active_layer_on_top(self, effect):
        states = [presentation(i, 1, effect) for i in range(3)]
        assert states[1].z_index == max(s.z_index for s in states)

    def test_fade(self):
        assert presentation(0, 0, "fade").opacity == 1.0
        inactive = presentation(1, 0, "fade")
        assert inactive.opacity == 0.0
        assert inactive.duration_ms == 700

    def test_zoom(self):
        inactive = presentation(1, 0, "zoom")
        assert inactive.scale == INACTIVE_ZOOM_SCALE
        assert inactive.opacity == 0.0
        assert presentation(0, 0, "zoom").scale == 1.0

    def test_slide_sides(self):
        assert presentation(0, 1, "slide").offset_x == -1.0
        assert presentation(2, 1, "slide").offset_x == 1.0
        assert presentation(1, 1, "slide").offset_x == 0.0

    def test_unknown_effect(self):
        with pytest.raises(ValueError):
            presentation(0, 0, "wipe")
