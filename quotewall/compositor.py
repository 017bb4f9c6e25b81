"""
Compositor

Draws one frame: background, glowing translucent panel, outlined quote text and attribution.

Every render takes a progress value in [0, 1] describing where in an animation the frame sits.
Even a static wallpaper is drawn at a progress value (NEUTRAL_PROGRESS) because the panel's
pulse and glow are functions of it; 0.5 gives the relaxed mid-pulse look.

Drawing order matters and is fixed:

    1) background (cached decode or solid color, optional filter)
    2) glow rings, panel fill and border, blended onto the background
    3) quote lines, drawn on their own transparent layer so zoom/rotation can be applied to the
       text alone and composited back in one step
    4) attribution, drawn straight onto the frame after the motion layer is gone

The motion layer is the only place a transform exists. It lives inside the motion_layer()
context manager and is discarded when the block exits, whether the block finished or raised, so
nothing carries over from one render to the next.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Optional, Union

from PIL import Image, ImageColor, ImageDraw

from quotewall import image_handler
from quotewall.image_cache import ImageCache
from quotewall.image_handler import InvalidImageError
from quotewall.layout import (
    LINE_SPACING,
    TEXT_TOP_PADDING,
    Layout,
    PanelGeometry,
    compute_layout,
    line_height,
    measure,
    resolve_first,
    typewriter_budget,
    visible_prefixes,
)
from quotewall.models import ImageEffectSettings, Quote, RenderSettings, TextReveal

logger = logging.getLogger(__name__)

NEUTRAL_PROGRESS = 0.5

PULSE_AMPLITUDE = 10
PANEL_CORNER_RADIUS = 20
GLOW_MAX_RINGS = 20
GLOW_MAX_ALPHA = 20
BORDER_COLOR = (255, 255, 255, 100)
BORDER_WIDTH = 2

ATTRIBUTION_RIGHT_INSET = 40
ATTRIBUTION_BOTTOM_INSET = 30
ATTRIBUTION_ALPHA = 230

SLIDE_DISTANCE = 0.3  # fraction of image width the slide reveal travels
PAN_DISTANCE = 0.2  # fraction of image width the pan sweeps across


def _outline_offsets(step: int) -> tuple:
    return tuple(
        (dx, dy)
        for dx in (-step, 0, step)
        for dy in (-step, 0, step)
        if (dx, dy) != (0, 0)
    )


TEXT_OUTLINE_OFFSETS = _outline_offsets(2)
ATTRIBUTION_OUTLINE_OFFSETS = _outline_offsets(1)

Background = Union[None, str, Path, Image.Image]


@dataclass(frozen=True)
class MotionTransform:
    scale: float = 1.0
    rotation: float = 0.0
    offset_x: float = 0.0

    @property
    def is_identity(self) -> bool:
        return self.scale == 1.0 and self.rotation % 360 == 0.0


def pulse_offset(progress: float) -> float:
    return math.sin(progress * 2 * math.pi) * PULSE_AMPLITUDE


def glow_intensity(progress: float) -> float:
    return 0.3 + 0.2 * math.sin(progress * 4 * math.pi)


def motion_for(progress: float, motion_effects: Iterable, image_width: int) -> MotionTransform:
    """
    Combine motion tags into one transform. zoom goes 0.8x -> 1.2x, pan sweeps 20% of the image
    width centered on the rest position, rotation turns a full circle. Unknown tags are ignored.
    """

    scale, rotation, offset_x = 1.0, 0.0, 0.0

    for effect in motion_effects or ():
        tag = str(effect).lower()

        if tag == "zoom":
            scale = 0.8 + 0.4 * progress
        elif tag == "pan":
            offset_x = (progress - 0.5) * image_width * PAN_DISTANCE
        elif tag == "rotation":
            rotation = progress * 360.0

    return MotionTransform(scale=scale, rotation=rotation, offset_x=offset_x)


def apply_motion(layer: Image.Image, motion: MotionTransform) -> Image.Image:
    """
    Scale and rotate layer about its center (clockwise for positive angles). Returns layer itself
    when there is nothing to do.
    """

    if motion.is_identity:
        return layer

    cx, cy = layer.width / 2, layer.height / 2
    theta = math.radians(motion.rotation)
    cos, sin = math.cos(theta), math.sin(theta)
    s = motion.scale

    # PIL wants the inverse mapping: output pixel -> source pixel
    a, b = cos / s, sin / s
    d, e = -sin / s, cos / s
    c = cx - a * cx - b * cy
    f = cy - d * cx - e * cy

    return layer.transform(
        layer.size,
        Image.Transform.AFFINE,
        (a, b, c, d, e, f),
        resample=Image.Resampling.BICUBIC,
    )


@contextmanager
def motion_layer(canvas: Image.Image, motion: MotionTransform):
    """
    Yield a transparent layer the size of canvas. When the block completes the layer is
    transformed by motion and composited onto canvas; if the block raises the layer is simply
    thrown away. Either way no transform survives the block.
    """

    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))

    try:
        yield layer

        transformed = apply_motion(layer, motion)
        canvas.paste(transformed, (0, 0), transformed)

        if transformed is not layer:
            transformed.close()

    finally:
        layer.close()


def _rgba(color: str, alpha: float) -> tuple:
    r, g, b = ImageColor.getrgb(color)[:3]
    return (r, g, b, max(0, min(255, int(alpha))))


def draw_panel(
    canvas: Image.Image,
    panel: PanelGeometry,
    settings: RenderSettings,
    glow: float,
):
    """
    Panel with a soft glow: concentric enlarged rounded rectangles, fainter the further out they
    are, then the panel fill and a thin translucent border. Drawn with alpha blending.
    """

    draw = ImageDraw.Draw(canvas, "RGBA")

    rings = int(GLOW_MAX_RINGS * glow)
    for i in range(rings, 0, -1):
        alpha = GLOW_MAX_ALPHA * glow * (1 - i / rings)
        draw.rounded_rectangle(
            (panel.x - i, panel.y - i, panel.right + i, panel.bottom + i),
            radius=PANEL_CORNER_RADIUS + i,
            fill=_rgba(settings.panel_color, alpha),
        )

    box = (panel.x, panel.y, panel.right, panel.bottom)
    draw.rounded_rectangle(
        box,
        radius=PANEL_CORNER_RADIUS,
        fill=_rgba(settings.panel_color, settings.panel_opacity * 255),
    )
    draw.rounded_rectangle(
        box, radius=PANEL_CORNER_RADIUS, outline=BORDER_COLOR, width=BORDER_WIDTH
    )


def draw_outlined_text(
    draw: ImageDraw.ImageDraw,
    position: tuple,
    text: str,
    font,
    fill: tuple,
    outline: tuple,
    offsets: tuple = TEXT_OUTLINE_OFFSETS,
):
    """The outline is the same glyphs redrawn at each offset underneath a single fill pass."""

    x, y = position

    for dx, dy in offsets:
        draw.text((x + dx, y + dy), text, font=font, fill=outline)

    draw.text((x, y), text, font=font, fill=fill)


def draw_quote_lines(
    layer: Image.Image,
    layout: Layout,
    panel: PanelGeometry,
    settings: RenderSettings,
    progress: float,
    text_reveal: TextReveal,
):
    draw = ImageDraw.Draw(layer)

    opacity = 1.0
    slide = 0.0
    lines = list(layout.lines)

    if text_reveal is TextReveal.FADE:
        opacity = progress
    elif text_reveal is TextReveal.SLIDE:
        slide = (1 - progress) * layer.width * SLIDE_DISTANCE
    elif text_reveal is TextReveal.TYPEWRITER:
        budget = typewriter_budget(layout.total_characters, progress)
        visible = visible_prefixes(lines, budget)
        lines = visible + [""] * (len(lines) - len(visible))

    fill = _rgba(settings.text_color, opacity * 255)
    outline = _rgba(settings.outline_color, opacity * 255)

    y = panel.y + TEXT_TOP_PADDING
    for full_line, shown in zip(layout.lines, lines):
        if shown:
            # center on the full line so a typewriter line grows in place instead of drifting
            x = panel.x + (panel.width - measure(full_line, layout.font)) / 2 + slide
            draw_outlined_text(draw, (x, y), shown, layout.font, fill, outline)

        y += layout.line_height + LINE_SPACING


def draw_attribution(
    canvas: Image.Image, layout: Layout, panel: PanelGeometry, settings: RenderSettings
):
    draw = ImageDraw.Draw(canvas, "RGBA")
    font = layout.attribution_font

    x = panel.right - measure(layout.attribution, font) - ATTRIBUTION_RIGHT_INSET
    y = panel.bottom - line_height(font) - ATTRIBUTION_BOTTOM_INSET

    draw_outlined_text(
        draw,
        (x, y),
        layout.attribution,
        font,
        fill=_rgba(settings.text_color, ATTRIBUTION_ALPHA),
        outline=_rgba(settings.outline_color, 255),
        offsets=ATTRIBUTION_OUTLINE_OFFSETS,
    )


class Compositor:
    """
    Renders quote frames. The image cache is passed in rather than looked up globally so that a
    process can share one cache between every compositor it creates, and tests can use their
    own. With cache=None backgrounds are decoded from disk on every render.
    """

    def __init__(self, cache: Optional[ImageCache] = None):
        self.cache = cache

    def _decode_background(self, path, settings: RenderSettings) -> Image.Image:
        if self.cache is not None:
            image = self.cache.get_or_load(path, settings.width, settings.height)
        else:
            try:
                image = image_handler.load_image(path, settings.width, settings.height)
            except InvalidImageError:
                image = None

        if image is None:
            raise InvalidImageError(f"Background {path} is not available.")

        return image

    def load_background(
        self,
        background: Background,
        settings: RenderSettings,
        effect: Optional[ImageEffectSettings] = None,
    ) -> Image.Image:
        """
        Return a fresh RGB raster of settings.size to draw on. A background that is missing or
        can't be decoded silently becomes a solid settings.background_color raster.
        """

        if isinstance(background, Image.Image):
            base = image_handler.fit_background(background, settings.size)
        else:
            candidates = [background] if background else []

            def solid():
                if background:
                    logger.debug("background %s unavailable, using solid color", background)
                return image_handler.solid_background(settings.size, settings.background_color)

            decoded = resolve_first(
                candidates,
                lambda path: self._decode_background(path, settings),
                solid,
                expected=(InvalidImageError, OSError, ValueError),
            )
            base = image_handler.fit_background(decoded, settings.size)
            decoded.close()

        filtered = image_handler.apply_effect(base, effect)
        if filtered is not base:
            base.close()

        return filtered

    def render_frame(
        self,
        background: Background,
        quote: Quote,
        settings: RenderSettings,
        progress: float = NEUTRAL_PROGRESS,
        text_reveal: TextReveal = TextReveal.NONE,
        motion_effects: Iterable = (),
        image_effect: Optional[ImageEffectSettings] = None,
    ) -> Image.Image:
        """
        Compose one frame and return it as an RGB image owned by the caller.

        progress is clamped to [0, 1]. text_reveal and motion_effects accept either enum members
        / tag strings; unknown motion tags are ignored.
        """

        progress = min(1.0, max(0.0, float(progress)))
        text_reveal = TextReveal.parse(text_reveal)

        canvas = self.load_background(background, settings, image_effect)

        try:
            layout = compute_layout(quote, settings, canvas.width, canvas.height)
            motion = motion_for(progress, motion_effects, canvas.width)

            panel = layout.panel.offset(dx=int(pulse_offset(progress)) + int(motion.offset_x))

            draw_panel(canvas, panel, settings, glow_intensity(progress))

            with motion_layer(canvas, motion) as layer:
                draw_quote_lines(layer, layout, panel, settings, progress, text_reveal)

            draw_attribution(canvas, layout, panel, settings)

        except Exception:
            canvas.close()
            raise

        return canvas

    def render_wallpaper(
        self,
        background: Background,
        quote: Quote,
        settings: RenderSettings,
        progress: float = NEUTRAL_PROGRESS,
    ) -> Image.Image:
        """A static wallpaper: one frame, no reveal, no motion."""

        return self.render_frame(background, quote, settings, progress)

    def create_wallpaper(
        self,
        background: Background,
        quote: Quote,
        settings: RenderSettings,
        output_path: Union[str, Path],
    ) -> Path:
        """Render a static wallpaper and write it as a PNG. Returns where it was saved."""

        image = self.render_wallpaper(background, quote, settings)

        try:
            return image_handler.save_image(image, output_path)
        finally:
            image.close()

    def render_for_monitors(
        self,
        background: Background,
        quote: Quote,
        settings: RenderSettings,
        resolutions: Mapping,
        max_workers: Optional[int] = None,
    ) -> dict:
        """
        Render one wallpaper per monitor, keyed like resolutions ({monitor index: (w, h)}).
        Renders run concurrently; each has its own drawing surface and they share the cache.
        """

        if not resolutions:
            return {}

        def render(item):
            index, (width, height) = item
            return index, self.render_wallpaper(
                background, quote, settings.with_size(width, height)
            )

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return dict(executor.map(render, resolutions.items()))
