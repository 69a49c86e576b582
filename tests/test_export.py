"""Tests for the real-time export pipeline."""

import asyncio

import numpy as np
import pytest
from PIL import Image

from storyreel.editor.assets import AudioBuffer, StillImage, load_visual
from storyreel.editor.audio import MixingGraph
from storyreel.editor.compositor import Surface
from storyreel.errors import (
    AssetLoadError,
    CaptureSetupError,
    EmptyInputError,
    ExportInProgressError,
    StoryReelError,
)
from storyreel.export import (
    CONTAINERS,
    CaptureStream,
    EncodedBlob,
    Exporter,
    MediaRecorder,
    available_encoders,
    negotiate_container,
    visible_duration,
)
from storyreel.models import Scene, SceneStatus, VisualRef
from storyreel.playback import SimulatedClock

from conftest import is_blue, is_red, make_scene

FPS = 10
RATE = 8000
DURATIONS = {"a.wav": 3.0, "c.wav": 2.0, "short.wav": 1.0}


class FakeRecorder:
    """Recorder stand-in that keeps frame times and renders the audio mix."""

    instances = []

    def __init__(self, stream, container, clock, fps=30, video_bitrate=0, audio_bitrate=0, on_stop=None):
        self.stream = stream
        self.container = container
        self.clock = clock
        self.fps = fps
        self.on_stop = on_stop
        self.state = "inactive"
        self.started_at = 0.0
        self.frame_times = []
        self.center_pixels = []
        self.audio = None
        FakeRecorder.instances.append(self)

    def start(self):
        self.state = "recording"
        self.started_at = self.clock.now()
        self.capture_frame()

    def capture_frame(self):
        self.frame_times.append(self.clock.now() - self.started_at)
        surface = self.stream.surface
        self.center_pixels.append(surface.image.getpixel((surface.width // 2, surface.height // 2)))

    def stop(self):
        self.state = "inactive"
        duration = self.clock.now() - self.started_at
        graph = self.stream.destination.graph
        self.audio = self.stream.destination.render(0.0, duration)
        self.on_stop()
        self.graph_state = graph.state
        return EncodedBlob(
            data=b"encoded",
            mime_type=self.container.mime_type,
            extension=self.container.extension,
            duration=duration,
            frame_count=len(self.frame_times),
        )

    def abort(self):
        self.state = "inactive"
        self.on_stop()


def fake_visual(ref):
    if ref.source == "broken.png":
        raise AssetLoadError("cannot decode", source=ref.source, kind="image")
    return StillImage(Image.new("RGB", (32, 18), (200, 120, 40)))


def fake_audio(source, sample_rate):
    frames = int(DURATIONS[source] * sample_rate)
    return AudioBuffer(np.full((frames, 1), 0.1, dtype=np.float32), sample_rate)


@pytest.fixture(autouse=True)
def reset_instances():
    FakeRecorder.instances.clear()


@pytest.fixture
def exporter():
    return Exporter(
        recorder_factory=FakeRecorder,
        containers=[c for c in CONTAINERS if c.mime_type == "video/mp4"],
        fps=FPS,
        sample_rate=RATE,
        visual_loader=fake_visual,
        audio_loader=fake_audio,
    )


def three_scenes():
    return [
        make_scene("a", narration="The lighthouse keeper wakes.", audio="a.wav"),
        make_scene("b", narration="A storm rolls in."),
        make_scene("c", narration="Morning comes.", audio="c.wav"),
    ]


class TestVisibleDuration:
    """Tests for per-scene hold time."""

    def test_with_audio(self):
        buffer = AudioBuffer(np.zeros((3 * RATE, 1), dtype=np.float32), RATE)
        assert visible_duration(buffer) == pytest.approx(3.5)

    def test_without_audio(self):
        assert visible_duration(None) == 5.0


class TestExporter:
    """Tests for scene sequencing during export."""

    def test_three_scene_duration(self, exporter):
        messages = []
        blob = asyncio.run(
            exporter.export(three_scenes(), "16:9", clock=SimulatedClock(FPS), on_progress=messages.append)
        )

        assert blob.duration == pytest.approx(11.0, abs=1 / FPS)
        assert [t.duration for t in blob.scenes] == pytest.approx([3.5, 5.0, 2.5], abs=1 / FPS)
        assert blob.skipped == []
        assert blob.scenes_rendered == 3
        assert messages == [
            "Rendering scene 1/3...",
            "Rendering scene 2/3...",
            "Rendering scene 3/3...",
        ]
        assert len(FakeRecorder.instances) == 1
        assert FakeRecorder.instances[0].stream.size == (1280, 720)

    def test_scenes_follow_each_other(self, exporter):
        blob = asyncio.run(exporter.export(three_scenes(), "9:16", clock=SimulatedClock(FPS)))
        for before, after in zip(blob.scenes, blob.scenes[1:]):
            assert before.end == pytest.approx(after.start)

    def test_audio_sources_do_not_overlap(self, exporter):
        blob = asyncio.run(exporter.export(three_scenes(), "1:1", clock=SimulatedClock(FPS)))
        first, _, third = blob.scenes
        assert first.audio_start == pytest.approx(0.0)
        assert first.audio_stop == pytest.approx(3.0)
        assert first.audio_stop <= third.audio_start
        assert third.audio_start == pytest.approx(8.5)

        audio = FakeRecorder.instances[0].audio
        assert np.allclose(audio[int(1.0 * RATE)], 0.1)
        assert np.all(audio[int(5.0 * RATE)] == 0)
        assert np.allclose(audio[int(9.0 * RATE)], 0.1)

    def test_graph_closed_after_stop(self, exporter):
        asyncio.run(exporter.export(three_scenes(), "9:16", clock=SimulatedClock(FPS)))
        assert FakeRecorder.instances[0].graph_state == "closed"

    def test_empty_input_rejected_before_recorder(self, exporter):
        with pytest.raises(EmptyInputError):
            asyncio.run(exporter.export([], "9:16", clock=SimulatedClock(FPS)))
        assert FakeRecorder.instances == []
        assert not exporter.busy

    def test_failed_scene_is_skipped(self, exporter):
        scenes = three_scenes()
        scenes[1] = make_scene("b", image="broken.png", audio="short.wav")

        blob = asyncio.run(exporter.export(scenes, "9:16", clock=SimulatedClock(FPS)))

        assert blob.skipped == [1]
        assert [t.scene_id for t in blob.scenes] == ["a", "c"]
        assert [t.duration for t in blob.scenes] == pytest.approx([3.5, 2.5], abs=1 / FPS)
        assert blob.duration == pytest.approx(6.0, abs=1 / FPS)
        assert blob.data

    def test_concurrent_export_rejected(self, exporter):
        async def scenario():
            first = asyncio.create_task(exporter.export(three_scenes(), "9:16", clock=SimulatedClock(FPS)))
            await asyncio.sleep(0)
            assert exporter.busy
            with pytest.raises(ExportInProgressError):
                await exporter.export(three_scenes(), "9:16", clock=SimulatedClock(FPS))
            return await first

        blob = asyncio.run(scenario())
        assert blob.scenes_rendered == 3
        assert len(FakeRecorder.instances) == 1
        assert not exporter.busy

    def test_loop_video_scene_is_muted_and_loops(self, mp4_path):
        exporter = Exporter(
            recorder_factory=FakeRecorder,
            containers=[c for c in CONTAINERS if c.mime_type == "video/mp4"],
            fps=FPS,
            sample_rate=RATE,
            visual_loader=load_visual,
            audio_loader=fake_audio,
        )
        scene = Scene(
            id="clip",
            visual=VisualRef(kind="video", source=str(mp4_path)),
            status=SceneStatus.COMPLETED,
        )

        blob = asyncio.run(exporter.export([scene], "16:9", clock=SimulatedClock(FPS)))

        assert blob.scenes[0].duration == pytest.approx(5.0, abs=1 / FPS)
        assert blob.scenes[0].audio_start is None
        recorder = FakeRecorder.instances[0]
        assert not np.any(recorder.audio)
        pixels = {round(t, 1): p for t, p in zip(recorder.frame_times, recorder.center_pixels)}
        assert is_red(pixels[0.5])
        assert is_blue(pixels[1.5])
        assert is_red(pixels[2.5])

    def test_recorder_setup_failure_propagates(self):
        class FailingRecorder(FakeRecorder):
            def start(self):
                raise CaptureSetupError("no encoder")

        exporter = Exporter(recorder_factory=FailingRecorder, visual_loader=fake_visual, audio_loader=fake_audio)
        with pytest.raises(CaptureSetupError):
            asyncio.run(exporter.export(three_scenes(), "9:16", clock=SimulatedClock(FPS)))
        assert not exporter.busy


class TestContainers:
    """Tests for container negotiation."""

    def test_prefers_first_supported(self):
        encoders = frozenset({"libvpx-vp9", "libopus", "libvpx", "libvorbis", "libx264", "aac"})
        assert negotiate_container(encoders=encoders).mime_type == "video/webm;codecs=vp9,opus"

    def test_skips_unsupported(self):
        encoders = frozenset({"libx264", "aac"})
        assert negotiate_container(encoders=encoders).extension == "mp4"

    def test_falls_back_to_webm(self):
        container = negotiate_container(encoders=frozenset())
        assert container.mime_type == "video/webm"
        assert container.extension == "webm"

    def test_capture_stream_requires_parts(self):
        with pytest.raises(CaptureSetupError):
            CaptureStream(None, None)


class BrokenWriter:
    """Encoder stand-in whose ffmpeg process dies after the first frame."""

    def __init__(self, *args, **kwargs):
        self.written = 0

    def write_frame(self, frame):
        if self.written:
            raise BrokenPipeError("ffmpeg exited")
        self.written += 1

    def close(self):
        raise BrokenPipeError("ffmpeg exited")


class TestEncoderFailure:
    """Tests for an encoder that fails mid-recording."""

    @pytest.fixture(autouse=True)
    def broken_writer(self, monkeypatch):
        monkeypatch.setattr("storyreel.export.recorder.FFMPEG_VideoWriter", BrokenWriter)

    def test_capture_raises_domain_error(self):
        clock = SimulatedClock(FPS)
        graph = MixingGraph(clock, RATE)
        stopped = []
        container = negotiate_container(encoders=frozenset({"libx264", "aac"}))
        recorder = MediaRecorder(
            CaptureStream(Surface(64, 64), graph.destination),
            container,
            clock,
            fps=FPS,
            on_stop=lambda: stopped.append(True),
        )
        recorder.start()
        clock.advance(0.5)

        with pytest.raises(StoryReelError, match="Encoder failed after 1 frames"):
            recorder.capture_frame()

        recorder.abort()
        assert recorder.state == "inactive"
        assert stopped == [True]

    def test_export_fails_cleanly(self):
        exporter = Exporter(
            containers=[c for c in CONTAINERS if c.mime_type == "video/mp4"],
            fps=FPS,
            sample_rate=RATE,
            visual_loader=fake_visual,
            audio_loader=fake_audio,
        )
        with pytest.raises(StoryReelError):
            asyncio.run(exporter.export(three_scenes(), "9:16", clock=SimulatedClock(FPS)))
        assert not exporter.busy


@pytest.mark.skipif(
    not {"libx264", "aac"} <= available_encoders(),
    reason="ffmpeg without libx264/aac",
)
class TestMediaRecorder:
    """End-to-end encode through ffmpeg."""

    def test_records_mp4(self, tmp_path):
        exporter = Exporter(
            containers=[c for c in CONTAINERS if c.mime_type == "video/mp4"],
            fps=FPS,
            sample_rate=RATE,
            visual_loader=fake_visual,
            audio_loader=fake_audio,
        )
        scenes = [make_scene("a", narration="Short.", audio="short.wav")]
        blob = asyncio.run(exporter.export(scenes, "16:9", clock=SimulatedClock(FPS)))

        assert blob.extension == "mp4"
        assert blob.frame_count == pytest.approx(1.5 * FPS, abs=1)
        assert len(blob.data) > 0

        path = blob.save(tmp_path / "out.mp4")
        assert path.read_bytes() == blob.data

    def test_frames_fill_gaps(self):
        clock = SimulatedClock(FPS)
        graph = MixingGraph(clock, RATE)
        container = negotiate_container(encoders=frozenset({"libx264", "aac"}))
        recorder = MediaRecorder(CaptureStream(Surface(64, 64), graph.destination), container, clock, fps=FPS)
        recorder.start()
        clock.advance(1.0)
        recorder.capture_frame()
        blob = recorder.stop()

        assert recorder.frames == FPS + 1
        assert blob.duration == pytest.approx(1.1)
        assert blob.data
