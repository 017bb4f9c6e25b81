"""
quotewall Configuration Management

Directories and limits quotewall needs at runtime. QuotewallConfig should be loaded once at
startup (the CLI does this before any command runs) and the values threaded through to the
pieces that need them, e.g. the image cache limits into the one ImageCache instance.

Configuration comes from dataclass defaults overridden by environment variables of the same
name. Nothing is written to disk: storing user preferences is the job of whatever application
embeds quotewall. Raise a QuotewallConfigError for any issues that arise in processing these
variables.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping, Optional

from quotewall.errors import QuotewallError
from quotewall.image_cache import DEFAULT_MAX_ENTRIES, DEFAULT_MAX_MEMORY_BYTES


class QuotewallConfigError(QuotewallError):
    """Raise when an issue occurs with handling quotewall configuration."""

    pass


@dataclass
class QuotewallConfig:
    """
    Dataclass to represent configuration variables for quotewall. Field names double as the
    environment variables that override them, so application code references identifiers here
    instead of brittle string keys.
    """

    QUOTEWALL_OUTPUT_DIR: Path = Path("~/.local/share/quotewall").expanduser()
    QUOTEWALL_FRAMES_DIR: Path = QUOTEWALL_OUTPUT_DIR / "frames"
    QUOTEWALL_FFMPEG: Optional[str] = None
    QUOTEWALL_CACHE_MAX_ENTRIES: int = DEFAULT_MAX_ENTRIES
    QUOTEWALL_CACHE_MAX_BYTES: int = DEFAULT_MAX_MEMORY_BYTES

    def __post_init__(self):
        """
        Values arriving from the environment are strings. Coerce them to the types the rest of
        quotewall expects.
        """

        self.QUOTEWALL_OUTPUT_DIR = Path(self.QUOTEWALL_OUTPUT_DIR).expanduser()
        self.QUOTEWALL_FRAMES_DIR = Path(self.QUOTEWALL_FRAMES_DIR).expanduser()

        for name in ("QUOTEWALL_CACHE_MAX_ENTRIES", "QUOTEWALL_CACHE_MAX_BYTES"):
            try:
                value = int(getattr(self, name))
            except (TypeError, ValueError):
                raise QuotewallConfigError(
                    f"{name} must be an integer, got {getattr(self, name)!r}."
                )

            if value < 1:
                raise QuotewallConfigError(f"{name} must be positive, got {value}.")

            setattr(self, name, value)

    def ensure_directories(self):
        """Make sure the output directories exist."""

        try:
            self.QUOTEWALL_OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
            self.QUOTEWALL_FRAMES_DIR.mkdir(parents=True, exist_ok=True)

        except OSError as error:
            raise QuotewallConfigError(f"There was an error creating output directories: {error}")


def load_config(environ: Optional[Mapping] = None) -> QuotewallConfig:
    """
    Build a QuotewallConfig from defaults, overridden by any QUOTEWALL_* environment variables.
    If only QUOTEWALL_OUTPUT_DIR is set, the frames directory follows it.
    """

    environ = os.environ if environ is None else environ

    overrides = {
        field.name: environ[field.name]
        for field in fields(QuotewallConfig)
        if environ.get(field.name)
    }

    if "QUOTEWALL_OUTPUT_DIR" in overrides and "QUOTEWALL_FRAMES_DIR" not in overrides:
        overrides["QUOTEWALL_FRAMES_DIR"] = Path(overrides["QUOTEWALL_OUTPUT_DIR"]) / "frames"

    return QuotewallConfig(**overrides)
