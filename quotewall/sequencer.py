"""
Frame Sequencer

Drives the Compositor across the frames of an animation and writes each frame to disk.

Frames are rendered strictly one at a time: frame i+1 is not composed until frame i has been
written and its pixels released. Peak memory therefore stays at one frame no matter how long
the animation is, at the cost of not rendering frames in parallel.

A run ends in one of three ways, reported by SequenceResult.status:

    COMPLETED - every frame was written
    CANCELLED - the cancellation token was set; frames written before that are kept
    FAILED    - composing or writing a frame raised; frames written before that are kept

Frames already on disk are never cleaned up here. Whether partial output is worth keeping is
the caller's decision.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from quotewall.compositor import Background, Compositor
from quotewall.errors import FrameSequenceError, SequenceCancelled
from quotewall.image_handler import save_image
from quotewall.models import AnimationProfile, Easing, Frame, Quote, RenderSettings

logger = logging.getLogger(__name__)

FRAME_NAME = "frame_{index:03d}.png"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

ProgressCallback = Callable[[float], None]
Overlay = Callable  # overlay(frame_image, eased_progress, frame_index) -> None


class CancellationToken:
    """
    Pollable, thread-safe cancellation flag. One side calls cancel(), the loop doing the work
    checks `cancelled` (or raise_if_cancelled) at its own safe points.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, exception=SequenceCancelled, message: str = "Operation cancelled."):
        if self.cancelled:
            raise exception(message)


def linear(t: float) -> float:
    return t


def ease_in(t: float) -> float:
    return t * t


def ease_out(t: float) -> float:
    return 1 - (1 - t) * (1 - t)


EASING_FUNCTIONS = {
    Easing.LINEAR: linear,
    Easing.EASE_IN: ease_in,
    Easing.EASE_OUT: ease_out,
}


def ease(easing: Union[Easing, str], t: float) -> float:
    """Apply the named easing curve to t, clamped to [0, 1]."""

    t = min(1.0, max(0.0, t))
    return EASING_FUNCTIONS[Easing.parse(easing)](t)


def raw_progress(index: int, total: int) -> float:
    return 0.0 if total <= 1 else index / (total - 1)


class SequenceStatus(Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class SequenceResult:
    status: SequenceStatus
    frames: list = field(default_factory=list)
    directory: Optional[Path] = None
    error: Optional[BaseException] = None

    @property
    def completed(self) -> bool:
        return self.status is SequenceStatus.COMPLETED

    def raise_for_status(self) -> "SequenceResult":
        """Raise SequenceCancelled or FrameSequenceError unless the run completed."""

        if self.status is SequenceStatus.CANCELLED:
            raise SequenceCancelled(
                f"Frame generation cancelled after {len(self.frames)} frame(s)."
            )

        if self.status is SequenceStatus.FAILED:
            raise FrameSequenceError(
                f"Frame generation failed after {len(self.frames)} frame(s): {self.error}"
            ) from self.error

        return self


def frame_directory(output_dir: Union[str, Path], now: Optional[datetime] = None) -> Path:
    """
    Create and return an empty output_dir/<yyyyMMdd_HHmmss> for a new set of frames. A run
    started in the same second as an earlier one gets <yyyyMMdd_HHmmss>_1, _2 and so on, so
    frames from two runs never share a directory.
    """

    now = now or datetime.now()
    parent = Path(output_dir).expanduser()
    parent.mkdir(parents=True, exist_ok=True)

    name = now.strftime(TIMESTAMP_FORMAT)
    directory = parent / name
    suffix = 0

    while True:
        try:
            directory.mkdir()
            return directory
        except FileExistsError:
            suffix += 1
            directory = parent / f"{name}_{suffix}"


class FrameSequencer:
    def __init__(self, compositor: Compositor):
        self.compositor = compositor

    def generate_frames(
        self,
        background: Background,
        quote: Quote,
        settings: RenderSettings,
        profile: AnimationProfile,
        output_dir: Union[str, Path],
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
        overlay: Optional[Overlay] = None,
    ) -> SequenceResult:
        """
        Render profile.total_frames frames into a fresh timestamped directory under output_dir.

        Raises AnimationProfileError up front if the profile yields no frames. Everything that
        goes wrong after the first frame starts is reported through the returned
        SequenceResult instead; call raise_for_status() to turn it into an exception.
        """

        total = profile.validate().total_frames
        directory = frame_directory(output_dir)
        result = SequenceResult(status=SequenceStatus.COMPLETED, directory=directory)

        logger.info(
            "generating %d frames (%s, %s reveal) in %s",
            total,
            profile.easing.value,
            profile.text_reveal.value,
            directory,
        )

        for index in range(total):
            if cancel_token is not None and cancel_token.cancelled:
                logger.info("cancelled after %d of %d frames", index, total)
                result.status = SequenceStatus.CANCELLED
                return result

            eased = ease(profile.easing, raw_progress(index, total))
            frame = Frame(index=index, path=directory / FRAME_NAME.format(index=index))

            try:
                frame.image = self.compositor.render_frame(
                    background,
                    quote,
                    settings,
                    eased,
                    text_reveal=profile.text_reveal,
                    motion_effects=profile.motion_effects,
                    image_effect=profile.image_effect,
                )

                if overlay is not None:
                    overlay(frame.image, eased, index)

                result.frames.append(save_image(frame.image, frame.path))

            except Exception as error:
                logger.exception("frame %d of %d failed", index, total)
                result.status = SequenceStatus.FAILED
                result.error = error
                return result

            finally:
                frame.release()

            if on_progress is not None:
                on_progress((index + 1) / total)

        logger.info("wrote %d frames to %s", total, directory)
        return result

    def generate_legacy_frames(
        self,
        background: Background,
        quote: Quote,
        settings: RenderSettings,
        output_dir: Union[str, Path],
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SequenceResult:
        """
        Settings-driven export: settings.animation_frames frames with linear timing and no
        reveal or motion, only the panel pulse and glow.
        """

        profile = AnimationProfile(fps=settings.animation_frames, duration_seconds=1)
        return self.generate_frames(
            background,
            quote,
            settings,
            profile,
            output_dir,
            on_progress=on_progress,
            cancel_token=cancel_token,
        )
