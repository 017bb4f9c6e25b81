"""
Layout Engine

Pure functions that turn an image resolution and a quote into a font, wrapped lines and a panel
rectangle. Everything here scales with the image: font size is proportional to the image height
and the panel width to the image width, so the same settings produce a similar looking wallpaper
on a laptop panel and on a 4k monitor.

Nothing in this module draws. Text is measured with the font's own getlength(), which needs no
drawing surface.
"""

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Iterable, Optional

from PIL import ImageFont

from quotewall.models import Quote, RenderSettings

logger = logging.getLogger(__name__)

HORIZONTAL_INSET = 80  # total left + right padding between panel edge and text
LINE_SPACING = 10
TEXT_TOP_PADDING = 40
VERTICAL_PADDING = 80
ATTRIBUTION_SCALE = 0.6

# faces that ship with most Linux distributions, tried after the user's own choices
SYSTEM_SANS_FONTS = (
    "DejaVuSans-Bold.ttf",
    "LiberationSans-Bold.ttf",
    "FreeSansBold.ttf",
    "Arial Bold.ttf",
    "arialbd.ttf",
)


@dataclass(frozen=True)
class PanelGeometry:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def offset(self, dx: int = 0, dy: int = 0) -> "PanelGeometry":
        return PanelGeometry(self.x + dx, self.y + dy, self.width, self.height)


@dataclass(frozen=True)
class Layout:
    """Everything the compositor needs to place the quote on one image."""

    font_size: float
    font: object
    lines: tuple
    line_height: int
    panel: PanelGeometry
    attribution: str
    attribution_font: object

    @property
    def total_characters(self) -> int:
        return sum(len(line) for line in self.lines)


def compute_font_size(image_height: int, settings: RenderSettings) -> float:
    """
    Font size grows linearly with image height, never dropping below settings.min_font_size.
    There is no upper bound.
    """

    return max(image_height / settings.font_size_divisor, settings.min_font_size)


def compute_panel_width(image_width: int, settings: RenderSettings) -> int:
    return min(image_width, int(round(image_width * settings.max_panel_width_ratio)))


def resolve_first(
    candidates: Iterable,
    loader: Callable,
    default: Callable,
    expected: tuple = (OSError, ValueError),
):
    """
    Return loader(candidate) for the first candidate that loads without raising one of the
    expected exceptions. If none does, return default(). Absence of a candidate is an expected
    condition here, so this function does not raise for it.
    """

    for candidate in candidates:
        try:
            return loader(candidate)
        except expected:
            continue

    return default()


def _family_variants(family: str) -> list:
    """
    Pillow locates fonts by file name, not by family name. Expand a family like 'Comic Sans MS'
    into the file names it is commonly installed under.
    """

    family = family.strip()
    if not family:
        return []

    if family.lower().endswith((".ttf", ".otf", ".ttc")):
        return [family]

    compact = family.replace(" ", "")
    dashed = family.replace(" ", "-")

    variants = [family]
    for name in (family, compact, dashed):
        variants.extend([f"{name}.ttf", f"{name} Bold.ttf", f"{name}-Bold.ttf"])
    variants.append(f"{compact.lower()}.ttf")

    # preserve order, drop duplicates
    return list(dict.fromkeys(variants))


def font_candidates(settings: RenderSettings) -> tuple:
    """Ordered font file names to try: preferred family, then fallbacks, then system faces."""

    names = []
    for family in (settings.font_family, *settings.fallback_fonts):
        names.extend(_family_variants(family))

    names.extend(SYSTEM_SANS_FONTS)
    return tuple(dict.fromkeys(names))


@lru_cache(maxsize=64)
def _load_font(candidates: tuple, size: int):
    def default():
        logger.debug("no font in %s could be loaded, using Pillow's default face", candidates[:3])
        return ImageFont.load_default(size=size)

    return resolve_first(
        candidates, lambda name: ImageFont.truetype(name, size=size), default
    )


def resolve_font(size: float, settings: RenderSettings):
    """
    Materialize the first available face from the settings' font list at size pixels. Falls
    back to Pillow's built in face, so this never raises for a missing font.
    """

    return _load_font(font_candidates(settings), max(1, int(round(size))))


def measure(text: str, font) -> float:
    return font.getlength(text)


def line_height(font) -> int:
    ascent, descent = font.getmetrics()
    return ascent + descent


def wrap_text(text: str, font, max_width: float) -> list:
    """
    Greedy word wrap. Each word is appended to the current line with a single space if the
    result still fits in max_width, otherwise it starts a new line. Words are never broken, so a
    single word wider than max_width ends up alone on its own (overlong) line.
    """

    words = text.split()
    if not words:
        return []

    lines = []
    current = words[0]

    for word in words[1:]:
        candidate = f"{current} {word}"

        if measure(candidate, font) <= max_width:
            current = candidate
        else:
            lines.append(current)
            current = word

    lines.append(current)
    return lines


def attribution_block_height(line_height: int) -> int:
    return int(line_height * 0.7) + 30


def compute_panel_geometry(
    image_width: int,
    image_height: int,
    lines: list,
    line_height: int,
    settings: RenderSettings,
) -> PanelGeometry:
    """
    Size the panel to fit lines plus the attribution block and center it on the image.
    Motion offsets are applied later by the compositor via PanelGeometry.offset().
    """

    width = compute_panel_width(image_width, settings)
    height = (
        len(lines) * (line_height + LINE_SPACING)
        + attribution_block_height(line_height)
        + VERTICAL_PADDING
    )

    return PanelGeometry(
        x=(image_width - width) // 2,
        y=(image_height - height) // 2,
        width=width,
        height=height,
    )


def compute_layout(
    quote: Quote,
    settings: RenderSettings,
    image_width: Optional[int] = None,
    image_height: Optional[int] = None,
) -> Layout:
    image_width = image_width or settings.width
    image_height = image_height or settings.height

    font_size = compute_font_size(image_height, settings)
    font = resolve_font(font_size, settings)

    panel_width = compute_panel_width(image_width, settings)
    lines = wrap_text(quote.text, font, panel_width - HORIZONTAL_INSET)
    height = line_height(font)

    return Layout(
        font_size=font_size,
        font=font,
        lines=tuple(lines),
        line_height=height,
        panel=compute_panel_geometry(image_width, image_height, lines, height, settings),
        attribution=quote.attribution,
        attribution_font=resolve_font(font_size * ATTRIBUTION_SCALE, settings),
    )


def visible_prefixes(lines: Iterable, budget: int) -> list:
    """
    Split a character budget across lines for the typewriter reveal. Returns the visible part of
    each line, stopping at the line where the budget runs out (which may be cut mid-line).
    """

    visible = []
    remaining = max(0, budget)

    for line in lines:
        if remaining <= 0:
            break

        visible.append(line[:remaining])
        remaining -= len(line)

    return visible


def typewriter_budget(total_characters: int, progress: float) -> int:
    return int(math.floor(total_characters * progress))
