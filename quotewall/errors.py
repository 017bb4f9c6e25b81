"""
quotewall errors

Exceptions raised by the composition and animation pipeline. Conditions the pipeline recovers
from on its own (a missing font face, an unreadable background, a cache decode failure) never
show up here. Everything below is either a caller-input error, an execution error from an
external encoder, or a cancellation signal.

Cancellation sits outside of the ExportError / FrameSequenceError branches so
that callers can tell "the user stopped it" apart from "it broke".
"""


class QuotewallError(Exception):
    """Base class for all quotewall errors."""

    pass


class RenderSettingsError(QuotewallError, ValueError):
    """Raised when RenderSettings are constructed with out of range values."""

    pass


class AnimationProfileError(QuotewallError, ValueError):
    """
    Raised when an AnimationProfile cannot produce any frames, e.g. zero fps or a
    non-positive duration.
    """

    pass


class FrameSequenceError(QuotewallError):
    """
    Raised by SequenceResult.raise_for_status() when frame generation failed part way
    through. The original exception is chained as __cause__.
    """

    pass


class SequenceCancelled(QuotewallError):
    """Raised by SequenceResult.raise_for_status() when frame generation was cancelled."""

    pass


class ExportError(QuotewallError):
    """Base class for errors encoding frames into a looping container."""

    pass


class NoFramesError(ExportError, ValueError):
    """Raised when an exporter is handed an empty frame list."""

    pass


class EncoderNotFoundError(ExportError, FileNotFoundError):
    """Raised when the external video encoder binary cannot be located."""

    pass


class EncoderError(ExportError):
    """
    Raised when the external encoder exits with a non-zero status. The captured diagnostic
    output is part of the message and is also kept on the instance.
    """

    def __init__(self, returncode: int, output: str = ""):
        self.returncode = returncode
        self.output = output
        super().__init__(f"Encoder failed (exit code {returncode}). {output}".strip())


class ExportCancelled(QuotewallError):
    """Raised when an export is cancelled between per-file operations."""

    pass
