"""CLI entry point for storyreel."""

import asyncio
import logging
import typer
from pathlib import Path
from typing import Optional

from . import __version__
from .config import config
from .errors import StoryReelError
from .models import Manifest

app = typer.Typer(
    name="storyreel",
    help="Preview and export narrated story reels",
    no_args_is_help=True
)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"storyreel version {__version__}")
        raise typer.Exit()


VIDEO_SUFFIXES = {".webm", ".mp4", ".mkv", ".mov"}


def with_extension(path: Path, extension: str) -> Path:
    """Give an output path the container's extension.

    A video suffix the user typed is replaced; anything else (such as the
    dot in "v1.2 story") is kept as part of the name.
    """
    if path.suffix.lower() in VIDEO_SUFFIXES:
        path = path.with_suffix("")
    return path.with_name(f"{path.name}.{extension}")


def load_manifest(script: Path) -> Manifest:
    if not script.exists():
        typer.echo(f"❌ No project found at {script}")
        raise typer.Exit(1)
    try:
        return Manifest.from_yaml(script)
    except Exception as e:
        typer.echo(f"❌ Error loading project: {e}")
        raise typer.Exit(1)


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    )
) -> None:
    """StoryReel - Preview and export narrated scene sequences."""
    pass


@app.command()
def status(
    script: Path = typer.Option(
        Path("story.yaml"),
        "--script",
        "-s",
        help="Path to story manifest YAML file",
        file_okay=True,
        dir_okay=False
    )
) -> None:
    """Show scene readiness for a project."""
    manifest = load_manifest(script)
    width, height = manifest.aspect_ratio.dimensions

    typer.echo(f"📁 Project: {manifest.project_name}")
    typer.echo(f"   Aspect ratio: {manifest.aspect_ratio.value} ({width}x{height})")
    typer.echo(f"   Transition: {manifest.transition.value}")
    typer.echo(f"   Scenes: {len(manifest.scenes)}")
    if manifest.background_music:
        typer.echo(f"   Music: {manifest.background_music[:60]}")

    ready = manifest.ready_scenes()
    typer.echo(f"   Ready to export: {len(ready)}/{len(manifest.scenes)}")

    typer.echo("\n📽️  Scenes:")
    for i, scene in enumerate(manifest.scenes):
        status_icon = "✅" if scene.is_ready else "⏳"
        visual = scene.visual.kind if scene.visual else "no visual"
        audio = "narrated" if scene.audio else "silent"
        typer.echo(f"   {status_icon} [{i + 1}] {scene.id}: {scene.status.value}, {visual}, {audio}")
        if scene.narration:
            preview = scene.narration[:60] + "..." if len(scene.narration) > 60 else scene.narration
            typer.echo(f"      → {preview}")


@app.command()
def snapshot(
    script: Path = typer.Option(
        Path("story.yaml"),
        "--script",
        "-s",
        help="Path to story manifest YAML file",
        file_okay=True,
        dir_okay=False
    ),
    scene_number: int = typer.Option(
        1,
        "--scene",
        "-n",
        help="Scene number to render (1-based)",
        min=1
    ),
    at: float = typer.Option(
        0.0,
        "--at",
        help="Time into the scene for video visuals (seconds)",
        min=0.0
    ),
    output: Path = typer.Option(
        Path("snapshot.png"),
        "--output",
        "-o",
        help="Output PNG path"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose logging"
    ),
) -> None:
    """Render one composited frame of a scene to an image."""
    from .editor import Surface, load_visual, render

    setup_logging(verbose)
    manifest = load_manifest(script)

    if scene_number > len(manifest.scenes):
        typer.echo(f"❌ Scene {scene_number} not found ({len(manifest.scenes)} scenes)")
        raise typer.Exit(1)

    scene = manifest.scenes[scene_number - 1]
    width, height = manifest.aspect_ratio.dimensions
    surface = Surface(width, height)

    visual = None
    if scene.visual is not None:
        try:
            visual = load_visual(scene.visual)
        except StoryReelError as e:
            typer.echo(f"⚠️  {e}")

    try:
        if visual is not None:
            visual.play(0.0)
        render(surface, visual, scene.narration, at)
    finally:
        if visual is not None:
            visual.close()

    output.parent.mkdir(parents=True, exist_ok=True)
    surface.image.save(output)
    typer.echo(f"✅ Snapshot saved: {output} ({width}x{height})")


@app.command()
def export(
    script: Path = typer.Option(
        Path("story.yaml"),
        "--script",
        "-s",
        help="Path to story manifest YAML file",
        file_okay=True,
        dir_okay=False
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file path; the extension follows the negotiated container"
    ),
    scene_number: Optional[int] = typer.Option(
        None,
        "--scene",
        "-n",
        help="Export only this scene (1-based)",
        min=1
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose logging"
    ),
) -> None:
    """Record the project's ready scenes into one video file, in real time."""
    from .export import Exporter
    from .playback import RealtimeClock

    setup_logging(verbose)
    manifest = load_manifest(script)

    try:
        config.validate_capture()
    except ValueError as e:
        typer.echo(f"❌ Configuration error: {e}")
        raise typer.Exit(1)

    if scene_number is not None:
        if scene_number > len(manifest.scenes):
            typer.echo(f"❌ Scene {scene_number} not found ({len(manifest.scenes)} scenes)")
            raise typer.Exit(1)
        scenes = [manifest.scenes[scene_number - 1]]
        default_output = Path(f"storyreel-scene-{scene_number}")
    else:
        scenes = manifest.ready_scenes()
        default_output = Path(manifest.project_name)

    typer.echo(f"🎬 Exporting {manifest.project_name}")
    typer.echo(f"   Scenes: {len(scenes)}/{len(manifest.scenes)} ready")
    typer.echo(f"   Aspect ratio: {manifest.aspect_ratio.value}")

    exporter = Exporter()
    try:
        blob = asyncio.run(
            exporter.export(
                scenes,
                manifest.aspect_ratio.value,
                clock=RealtimeClock(config.fps),
                on_progress=lambda message: typer.echo(f"   {message}"),
            )
        )
    except StoryReelError as e:
        typer.echo(f"❌ Export failed: {e}")
        raise typer.Exit(1)

    path = blob.save(with_extension(output or default_output, blob.extension))
    typer.echo(f"✅ Video exported: {path}")
    typer.echo(f"   Format: {blob.mime_type}")
    typer.echo(f"   Duration: {blob.duration:.1f}s")
    if blob.skipped:
        skipped = ", ".join(str(i + 1) for i in blob.skipped)
        typer.echo(f"⚠️  Skipped scenes: {skipped}")


if __name__ == "__main__":
    app()
