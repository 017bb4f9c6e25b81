"""
quotewall

Render quote wallpapers and animations from the command line.

This module defines the entry point to the quotewall CLI. The 'cli' group loads configuration,
configures logging and builds the one ImageCache and Compositor shared by every subcommand. The
subcommands are thin: they turn options into a Quote, RenderSettings and AnimationProfile and
hand them to the library, reporting through the console helpers.
"""

from pathlib import Path

import click
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from quotewall import __version__
from quotewall.compositor import Compositor
from quotewall.config import QuotewallConfig, load_config
from quotewall.console import confirm_success, configure_logging, console, describe, warn
from quotewall.decorators import catch_errors
from quotewall.export import export_animation
from quotewall.image_cache import ImageCache
from quotewall.image_handler import InvalidImageError, validate_image
from quotewall.models import AnimationProfile, Easing, Quote, RenderSettings, TextReveal
from quotewall.sequencer import FrameSequencer

DEFAULT_SPEAKER = "Unknown"
DEFAULT_SOURCE = "Unknown"


class AppContext:
    """Objects shared by every subcommand of one invocation."""

    def __init__(self, config: QuotewallConfig):
        self.config = config
        self.cache = ImageCache(
            max_entries=config.QUOTEWALL_CACHE_MAX_ENTRIES,
            max_memory_bytes=config.QUOTEWALL_CACHE_MAX_BYTES,
        )
        self.compositor = Compositor(cache=self.cache)


def quote_options(func):
    """Options describing the quote, shared by render and animate."""

    options = [
        click.option("--text", "-t", required=True, help="The quote to render."),
        click.option(
            "--speaker", "-s", default=DEFAULT_SPEAKER, show_default=True, help="Who said it."
        ),
        click.option(
            "--source", default=DEFAULT_SOURCE, show_default=True, help="Where it is from."
        ),
        click.option(
            "--background",
            "-b",
            type=click.Path(path_type=Path),
            default=None,
            help="Background image. Missing or unreadable files fall back to a solid color.",
        ),
        click.option(
            "--size",
            type=(int, int),
            default=(RenderSettings.width, RenderSettings.height),
            show_default=True,
            help="Output resolution as WIDTH HEIGHT.",
        ),
    ]

    for option in reversed(options):
        func = option(func)

    return func


def build_quote(text: str, speaker: str, source: str) -> Quote:
    quote = Quote(text=text, speaker=speaker, source=source)

    if not quote.is_valid():
        raise click.BadParameter("text, speaker and source must not be blank.")

    return quote


@click.group()
@click.option(
    "--verbose",
    "verbosity",
    flag_value="verbose",
    help="Log everything the renderer does, down to cache evictions.",
)
@click.option(
    "--quiet",
    "verbosity",
    flag_value="quiet",
    help="Silence all output except errors.",
)
@click.version_option(version=__version__)
@click.pass_context
@catch_errors
def cli(ctx: click.Context, verbosity):
    """
    quotewall

    Compose quote wallpapers and animated quote loops.


    ====================
    Quickstart
    ====================

    Render a 1440p wallpaper over a photo:

        $ quotewall render --text "I'm gonna be King of the Pirates!" --speaker Luffy \\
            --source "One Piece" --background beach.jpg --output wallpaper.png

    Animate the same quote with a typewriter reveal and export a looping GIF:

        $ quotewall animate --text "I'm gonna be King of the Pirates!" --reveal typewriter \\
            --motion zoom --export luffy.gif


    ====================
    Configuration
    ====================

    Output directories, the ffmpeg binary and image cache limits are read from QUOTEWALL_*
    environment variables, e.g. QUOTEWALL_OUTPUT_DIR and QUOTEWALL_FFMPEG.
    """

    verbosity = verbosity or "normal"
    configure_logging(verbosity)

    if verbosity == "quiet":
        console.quiet = True
        ctx.call_on_close(lambda: setattr(console, "quiet", False))

    config = load_config()
    config.ensure_directories()
    ctx.obj = AppContext(config)


@cli.command()
@quote_options
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Where to write the PNG. Defaults to wallpaper.png in QUOTEWALL_OUTPUT_DIR.",
)
@click.pass_obj
@catch_errors
def render(app: AppContext, text, speaker, source, background, size, output):
    """Render a static quote wallpaper to a PNG file."""

    quote = build_quote(text, speaker, source)
    settings = RenderSettings(width=size[0], height=size[1])
    output = output or app.config.QUOTEWALL_OUTPUT_DIR / "wallpaper.png"

    if background is not None:
        try:
            validate_image(background)
        except InvalidImageError as error:
            warn(f"{error} Using a solid background.")

    describe(f"Rendering {settings.width}x{settings.height} wallpaper...")
    saved = app.compositor.create_wallpaper(background, quote, settings, output)
    confirm_success(f"Saved wallpaper to {saved}")


@cli.command()
@quote_options
@click.option("--fps", type=click.IntRange(min=1), default=24, show_default=True)
@click.option(
    "--duration", type=click.IntRange(min=1), default=6, show_default=True, help="Seconds."
)
@click.option(
    "--easing",
    type=click.Choice([e.value for e in Easing], case_sensitive=False),
    default=Easing.LINEAR.value,
    show_default=True,
)
@click.option(
    "--reveal",
    type=click.Choice([r.value for r in TextReveal], case_sensitive=False),
    default=TextReveal.NONE.value,
    show_default=True,
    help="How the quote text appears over the animation.",
)
@click.option(
    "--motion",
    "motion_effects",
    type=click.Choice(["zoom", "pan", "rotation"], case_sensitive=False),
    multiple=True,
    help="Motion applied over the animation. Repeat to combine.",
)
@click.option(
    "--no-loop", is_flag=True, default=False, help="Play an exported GIF once instead of looping."
)
@click.option(
    "--frames-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory for frame folders. Defaults to QUOTEWALL_FRAMES_DIR.",
)
@click.option(
    "--export",
    "export_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Also encode the frames to this .gif or .mp4 file.",
)
@click.pass_obj
@catch_errors
def animate(
    app: AppContext,
    text,
    speaker,
    source,
    background,
    size,
    fps,
    duration,
    easing,
    reveal,
    motion_effects,
    no_loop,
    frames_dir,
    export_path,
):
    """Render an animation as numbered PNG frames, and optionally export it."""

    quote = build_quote(text, speaker, source)
    settings = RenderSettings(width=size[0], height=size[1])
    profile = AnimationProfile(
        fps=fps,
        duration_seconds=duration,
        easing=easing,
        loop=not no_loop,
        text_reveal=reveal,
        motion_effects=motion_effects,
    )
    frames_dir = frames_dir or app.config.QUOTEWALL_FRAMES_DIR

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Rendering frames...", total=1.0)

        result = FrameSequencer(app.compositor).generate_frames(
            background,
            quote,
            settings,
            profile,
            frames_dir,
            on_progress=lambda value: progress.update(task, completed=value),
        )

    result.raise_for_status()
    confirm_success(f"Wrote {len(result.frames)} frames to {result.directory}")

    if export_path is not None:
        describe(f"Exporting to {export_path}...")
        saved = export_animation(
            result.frames, export_path, profile, ffmpeg=app.config.QUOTEWALL_FFMPEG
        )
        confirm_success(f"Exported animation to {saved}")


@cli.command()
@click.argument(
    "frames_dir", type=click.Path(path_type=Path, exists=True, file_okay=False)
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path, dir_okay=False),
    required=True,
    help="Destination .gif or .mp4 file.",
)
@click.option("--fps", type=click.IntRange(min=1), default=24, show_default=True)
@click.option("--no-loop", is_flag=True, default=False, help="Play a GIF once instead of looping.")
@click.pass_obj
@catch_errors
def export(app: AppContext, frames_dir, output, fps, no_loop):
    """Encode the frame_*.png files in FRAMES_DIR into a GIF or MP4."""

    frames = sorted(frames_dir.glob("frame_*.png"))
    profile = AnimationProfile(fps=fps, duration_seconds=1, loop=not no_loop)

    describe(f"Exporting {len(frames)} frames from {frames_dir}...")
    saved = export_animation(frames, output, profile, ffmpeg=app.config.QUOTEWALL_FFMPEG)
    confirm_success(f"Exported animation to {saved}")


def main():
    cli()


if __name__ == "__main__":
    main()
