"""
Exporter

Encode a rendered frame set into a single looping file: an animated GIF written with Pillow, or
an MP4 produced by an external ffmpeg binary.

Unlike rendering, nothing here falls back quietly. An empty frame list, a missing encoder or an
encoder that exits with an error are all things the caller can fix, so they are raised.
Cancellation is checked between per-file operations and raised as ExportCancelled, which is not
an ExportError.

Exports can take a while, so submit_export() runs one on an executor and hands back a Future.
"""

import logging
import shutil
import subprocess
import tempfile
from concurrent.futures import Executor, Future
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from PIL import Image

from quotewall.errors import (
    EncoderError,
    EncoderNotFoundError,
    ExportCancelled,
    NoFramesError,
)
from quotewall.models import AnimationProfile, ExportFormat

logger = logging.getLogger(__name__)

FFMPEG_FRAME_PATTERN = "frame_%03d.png"


def frame_delay_centiseconds(fps: int) -> int:
    """Per-frame delay in hundredths of a second, never below 1."""

    return max(1, round(100 / fps))


def _check_frames(frames: Sequence):
    if not frames:
        raise NoFramesError("No frames to export.")


def _check_cancelled(cancel_token):
    if cancel_token is not None:
        cancel_token.raise_if_cancelled(ExportCancelled, "Export cancelled.")


def _report(on_progress: Optional[Callable], value: float):
    if on_progress is not None:
        on_progress(value)


def export_gif(
    frames: Sequence,
    output_path: Union[str, Path],
    profile: AnimationProfile,
    on_progress: Optional[Callable] = None,
    cancel_token=None,
) -> Path:
    """
    Write frames as an animated GIF. A looping profile repeats forever; otherwise the animation
    plays once.
    """

    _check_frames(frames)

    output_path = Path(output_path).expanduser()
    output_path.parent.mkdir(parents=True, exist_ok=True)

    delay_ms = frame_delay_centiseconds(profile.fps) * 10
    images = []

    try:
        for i, frame_path in enumerate(frames):
            _check_cancelled(cancel_token)

            with Image.open(frame_path) as frame:
                images.append(frame.convert("RGB"))

            _report(on_progress, (i + 1) / len(frames) * 0.9)

        _check_cancelled(cancel_token)

        options = {
            "save_all": True,
            "append_images": images[1:],
            "duration": delay_ms,
            "optimize": True,
        }

        # leaving loop out writes no NETSCAPE extension, which viewers play once
        if profile.loop:
            options["loop"] = 0

        images[0].save(output_path, format="GIF", **options)

    finally:
        for image in images:
            image.close()

    _report(on_progress, 1.0)
    logger.info("exported %d frames to %s", len(frames), output_path)
    return output_path


def find_encoder(ffmpeg: Optional[Union[str, Path]] = None) -> str:
    """Locate the ffmpeg binary, either the explicit path given or 'ffmpeg' on PATH."""

    candidate = str(ffmpeg) if ffmpeg else "ffmpeg"
    located = shutil.which(candidate)

    if located is None:
        raise EncoderNotFoundError(f"FFmpeg executable not found: {candidate}")

    return located


def ffmpeg_command(encoder: str, input_pattern: Path, output_path: Path, fps: int) -> list:
    return [
        encoder,
        "-y",
        "-framerate",
        str(fps),
        "-i",
        str(input_pattern),
        "-pix_fmt",
        "yuv420p",
        "-crf",
        "18",
        "-preset",
        "veryfast",
        str(output_path),
    ]


def export_mp4(
    frames: Sequence,
    output_path: Union[str, Path],
    profile: AnimationProfile,
    ffmpeg: Optional[Union[str, Path]] = None,
    on_progress: Optional[Callable] = None,
    cancel_token=None,
) -> Path:
    """
    Encode frames to MP4 with ffmpeg. Frames are first copied into a scratch directory under
    sequential names so ffmpeg can read them with a single input pattern, whatever their
    original names were. The scratch directory is always removed.
    """

    _check_frames(frames)
    encoder = find_encoder(ffmpeg)

    output_path = Path(output_path).expanduser()
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.TemporaryDirectory(prefix="quotewall_frames_") as scratch:
        scratch = Path(scratch)

        for i, frame_path in enumerate(frames):
            _check_cancelled(cancel_token)
            shutil.copyfile(frame_path, scratch / (FFMPEG_FRAME_PATTERN % i))
            _report(on_progress, (i + 1) / len(frames) * 0.5)

        _check_cancelled(cancel_token)

        command = ffmpeg_command(encoder, scratch / FFMPEG_FRAME_PATTERN, output_path, profile.fps)
        logger.debug("running %s", " ".join(command))

        try:
            subprocess.run(
                command,
                check=True,
                text=True,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )

        except subprocess.CalledProcessError as error:
            raise EncoderError(error.returncode, error.stderr or "") from error

        except FileNotFoundError as error:
            # the binary vanished between lookup and launch
            raise EncoderNotFoundError(f"FFmpeg executable not found: {encoder}") from error

    _report(on_progress, 1.0)
    logger.info("exported %d frames to %s", len(frames), output_path)
    return output_path


def resolve_format(output_path: Union[str, Path], fmt=None) -> ExportFormat:
    if fmt is not None:
        return ExportFormat.parse(fmt)

    suffix = Path(output_path).suffix.lstrip(".")
    try:
        return ExportFormat.parse(suffix)
    except ValueError:
        raise ValueError(
            f"Cannot tell the export format from '{output_path}'. Use a .gif or .mp4 file name."
        )


def export_animation(
    frames: Sequence,
    output_path: Union[str, Path],
    profile: AnimationProfile,
    fmt=None,
    ffmpeg: Optional[Union[str, Path]] = None,
    on_progress: Optional[Callable] = None,
    cancel_token=None,
) -> Path:
    """Export to GIF or MP4, chosen by fmt or else by the output file suffix."""

    if resolve_format(output_path, fmt) is ExportFormat.MP4:
        return export_mp4(
            frames,
            output_path,
            profile,
            ffmpeg=ffmpeg,
            on_progress=on_progress,
            cancel_token=cancel_token,
        )

    return export_gif(
        frames, output_path, profile, on_progress=on_progress, cancel_token=cancel_token
    )


def submit_export(executor: Executor, frames: Sequence, output_path, profile, **kwargs) -> Future:
    """
    Run export_animation on executor so the calling thread isn't blocked. Errors, including
    ExportCancelled, come out of Future.result().
    """

    return executor.submit(export_animation, list(frames), output_path, profile, **kwargs)
