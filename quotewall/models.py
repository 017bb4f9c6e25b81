"""
quotewall models

Plain value objects passed between the layout engine, compositor and frame sequencer.
All of them are frozen dataclasses: settings and profiles have no identity, so a caller who
wants a variation makes a copy with dataclasses.replace() instead of mutating a shared one.

Enumerations use the lowercase tag strings as their values so they can be parsed straight
from command line options or collaborator payloads (see the `parse` classmethods).
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from quotewall.errors import AnimationProfileError, RenderSettingsError


class _TagEnum(Enum):
    @classmethod
    def parse(cls, value):
        """Case-insensitive lookup by tag, accepting an existing member as-is."""

        if isinstance(value, cls):
            return value

        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member

        raise ValueError(
            f"'{value}' is not a valid {cls.__name__}. Choose from: {', '.join(m.value for m in cls)}"
        )


class Easing(_TagEnum):
    LINEAR = "linear"
    EASE_IN = "easeIn"
    EASE_OUT = "easeOut"


class TextReveal(_TagEnum):
    NONE = "none"
    FADE = "fade"
    SLIDE = "slide"
    TYPEWRITER = "typewriter"


class ExportFormat(_TagEnum):
    GIF = "gif"
    MP4 = "mp4"


# motion tags understood by the compositor. anything else is ignored at render time.
MOTION_EFFECTS = ("zoom", "pan", "rotation")

FILTER_TYPES = (
    "none",
    "blur",
    "glow",
    "sepia",
    "grayscale",
    "vintage",
    "brightness",
    "contrast",
)


@dataclass(frozen=True)
class Quote:
    """
    A quote as handed to the pipeline by the quote library collaborator. Only text, speaker
    and source take part in rendering; the remaining fields travel along for collaborators
    that filter or rank quotes.
    """

    text: str
    speaker: str
    source: str
    categories: frozenset = frozenset()
    tags: frozenset = frozenset()
    is_favorite: bool = False
    rating: int = 0

    def __post_init__(self):
        # accept any iterable of strings for the set-valued fields
        object.__setattr__(self, "categories", frozenset(self.categories))
        object.__setattr__(self, "tags", frozenset(self.tags))

        if not 0 <= self.rating <= 5:
            raise ValueError(f"Quote rating must be between 0 and 5, got {self.rating}.")

    def is_valid(self) -> bool:
        """A quote is renderable when text, speaker and source are all non-blank."""

        return all(
            value is not None and value.strip()
            for value in (self.text, self.speaker, self.source)
        )

    @property
    def attribution(self) -> str:
        return f"— {self.speaker} ({self.source})"

    def __str__(self):
        return f'"{self.text}" - {self.speaker} ({self.source})'


@dataclass(frozen=True)
class RenderSettings:
    """
    Visual configuration for a single rendered wallpaper or animation frame.

    font_size_divisor and min_font_size drive the resolution-proportional font size:
    font size = max(height / font_size_divisor, min_font_size). max_panel_width_ratio caps
    the panel at that fraction of the image width. animation_frames is only read by the
    legacy settings-driven frame export.
    """

    width: int = 2560
    height: int = 1440
    background_color: str = "#2C3E50"
    font_family: str = "Comic Sans MS"
    fallback_fonts: tuple = ("Trebuchet MS", "Verdana", "Segoe UI", "Calibri")
    text_color: str = "#FFFFFF"
    outline_color: str = "#000000"
    panel_color: str = "#34495E"
    panel_opacity: float = 0.85
    max_panel_width_ratio: float = 0.65
    font_size_divisor: float = 30.0
    min_font_size: float = 24.0
    animation_frames: int = 16

    def __post_init__(self):
        object.__setattr__(self, "fallback_fonts", tuple(self.fallback_fonts))

        if not 320 <= self.width <= 7680:
            raise RenderSettingsError("Width must be between 320 and 7680 pixels.")

        if not 240 <= self.height <= 4320:
            raise RenderSettingsError("Height must be between 240 and 4320 pixels.")

        if not 0.0 <= self.panel_opacity <= 1.0:
            raise RenderSettingsError("Panel opacity must be between 0.0 and 1.0.")

        if not 0.0 < self.max_panel_width_ratio <= 1.0:
            raise RenderSettingsError("Max panel width ratio must be within (0.0, 1.0].")

        if self.font_size_divisor <= 0:
            raise RenderSettingsError("Font size divisor must be positive.")

        if self.min_font_size <= 0:
            raise RenderSettingsError("Minimum font size must be positive.")

        if not 1 <= self.animation_frames <= 120:
            raise RenderSettingsError("Animation frames must be between 1 and 120.")

    @property
    def size(self) -> tuple:
        return (self.width, self.height)

    def with_size(self, width: int, height: int) -> "RenderSettings":
        """Return a copy of these settings targeting a different resolution."""

        return replace(self, width=width, height=height)


@dataclass(frozen=True)
class ParticleSettings:
    """
    Configuration for the particle overlay. The simulation itself lives outside of quotewall;
    the frame sequencer only passes each frame to an overlay callable.
    """

    particle_type: str = "none"
    count: int = 100
    speed: float = 50.0
    color: str = "#FFFFFF"
    enabled: bool = False


@dataclass(frozen=True)
class ImageEffectSettings:
    """Filter applied to the background before the panel and text are drawn."""

    filter_type: str = "none"
    intensity: float = 1.0
    enabled: bool = False

    def __post_init__(self):
        object.__setattr__(self, "filter_type", self.filter_type.strip().lower())

        if self.filter_type not in FILTER_TYPES:
            raise ValueError(
                f"Unknown filter '{self.filter_type}'. Choose from: {', '.join(FILTER_TYPES)}"
            )

        if not 0.1 <= self.intensity <= 3.0:
            raise ValueError("Filter intensity must be between 0.1 and 3.0.")

    @property
    def active(self) -> bool:
        return self.enabled and self.filter_type != "none"


@dataclass(frozen=True)
class AnimationProfile:
    """
    Timing and effect configuration for a multi-frame animation.

    total_frames = fps * duration_seconds. A profile that would produce no frames can be
    constructed (collaborators build profiles incrementally) but is rejected by the frame
    sequencer through validate().
    """

    fps: int = 24
    duration_seconds: int = 6
    easing: Easing = Easing.LINEAR
    loop: bool = True
    text_reveal: TextReveal = TextReveal.NONE
    motion_effects: tuple = ()
    particles: Optional[ParticleSettings] = None
    image_effect: Optional[ImageEffectSettings] = None

    def __post_init__(self):
        object.__setattr__(self, "easing", Easing.parse(self.easing))
        object.__setattr__(self, "text_reveal", TextReveal.parse(self.text_reveal))
        object.__setattr__(
            self, "motion_effects", tuple(tag.lower() for tag in self.motion_effects)
        )

    @property
    def total_frames(self) -> int:
        return int(self.fps * self.duration_seconds)

    def validate(self) -> "AnimationProfile":
        if self.fps <= 0:
            raise AnimationProfileError(f"Frames per second must be positive, got {self.fps}.")

        if self.total_frames < 1:
            raise AnimationProfileError(
                f"Animation must contain at least one frame "
                f"(fps={self.fps}, duration={self.duration_seconds}s)."
            )

        return self


@dataclass
class Frame:
    """A rendered frame on its way to disk. Closed by the sequencer right after the write."""

    index: int
    path: object
    image: object = field(default=None, repr=False)

    def release(self):
        if self.image is not None:
            self.image.close()
            self.image = None
