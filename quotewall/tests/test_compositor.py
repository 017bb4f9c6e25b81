"""
Tests for compositor.py

Rendering is checked by comparing rendered pixels between calls rather than against stored
reference images: which font face is available differs between machines, but two renders on
the same machine must agree exactly. Reveal modes that should hide the quote text are compared
against each other, and motion is checked for leaking from one render into the next.

*** Fixtures ***
- compositor, image_cache, luffy_quote, small_settings, background_image, corrupt_image
  (defined in conftest.py)
- tmp_path (defined by Pytest)
"""

import math
import unittest.mock

import pytest
from PIL import Image, ImageDraw

from quotewall.compositor import (
    NEUTRAL_PROGRESS,
    Compositor,
    MotionTransform,
    apply_motion,
    glow_intensity,
    motion_for,
    motion_layer,
    pulse_offset,
)
from quotewall.image_handler import validate_image
from quotewall.models import ImageEffectSettings, TextReveal


def test_render_frame_size_and_mode(compositor, luffy_quote, small_settings, background_image):
    frame = compositor.render_frame(background_image, luffy_quote, small_settings)

    assert frame.size == (320, 240)
    assert frame.mode == "RGB"


@pytest.mark.parametrize("background", [None, "", "does/not/exist.png"])
def test_missing_background_uses_solid_color(compositor, luffy_quote, small_settings, background):
    frame = compositor.render_frame(background, luffy_quote, small_settings)

    # corners are well clear of the panel and its glow
    assert frame.getpixel((0, 0)) == (44, 62, 80)
    assert frame.getpixel((319, 239)) == (44, 62, 80)


def test_corrupt_background_uses_solid_color(compositor, luffy_quote, small_settings, corrupt_image):
    frame = compositor.render_frame(corrupt_image, luffy_quote, small_settings)

    assert frame.size == (320, 240)
    assert frame.getpixel((0, 0)) == (44, 62, 80)


def test_background_from_pil_image(compositor, luffy_quote, small_settings):
    background = Image.new("RGBA", (64, 64), (255, 0, 0, 255))

    frame = compositor.render_frame(background, luffy_quote, small_settings)

    assert frame.getpixel((0, 0)) == (255, 0, 0)
    assert background.size == (64, 64)


def test_background_decoded_once_for_repeated_renders(
    compositor, image_cache, luffy_quote, small_settings, background_image
):
    for progress in (0.0, 0.5, 1.0):
        compositor.render_frame(background_image, luffy_quote, small_settings, progress)

    assert image_cache.stats().misses == 1
    assert image_cache.stats().hits == 2


@unittest.mock.patch("quotewall.compositor.image_handler.load_image", autospec=True)
def test_uncached_compositor_decodes_every_render(
    mock_load, luffy_quote, small_settings, background_image
):
    # the compositor closes what it decodes, so every call needs a fresh image
    mock_load.side_effect = lambda *args, **kwargs: Image.new("RGB", (320, 240), (0, 0, 255))
    compositor = Compositor()

    for _ in range(2):
        frame = compositor.render_frame(background_image, luffy_quote, small_settings)
        assert frame.getpixel((0, 0)) == (0, 0, 255)

    assert mock_load.call_count == 2


def test_render_is_deterministic(compositor, luffy_quote, small_settings, background_image):
    first = compositor.render_frame(background_image, luffy_quote, small_settings, 0.3)
    second = compositor.render_frame(background_image, luffy_quote, small_settings, 0.3)

    assert first.tobytes() == second.tobytes()


def test_motion_does_not_carry_over(compositor, luffy_quote, small_settings, background_image):
    before = compositor.render_frame(background_image, luffy_quote, small_settings, 0.3)

    compositor.render_frame(
        background_image,
        luffy_quote,
        small_settings,
        0.7,
        motion_effects=("zoom", "rotation", "pan"),
    )

    after = compositor.render_frame(background_image, luffy_quote, small_settings, 0.3)

    assert before.tobytes() == after.tobytes()


def test_motion_changes_output(compositor, luffy_quote, small_settings, background_image):
    still = compositor.render_frame(background_image, luffy_quote, small_settings, 0.2)
    moving = compositor.render_frame(
        background_image, luffy_quote, small_settings, 0.2, motion_effects=("rotation",)
    )

    assert still.tobytes() != moving.tobytes()


def test_hidden_reveals_agree_at_start(compositor, luffy_quote, small_settings):
    """At progress 0 both fade and typewriter show no quote text at all."""

    fade = compositor.render_frame(None, luffy_quote, small_settings, 0.0, text_reveal="fade")
    typewriter = compositor.render_frame(
        None, luffy_quote, small_settings, 0.0, text_reveal=TextReveal.TYPEWRITER
    )
    plain = compositor.render_frame(None, luffy_quote, small_settings, 0.0)

    assert fade.tobytes() == typewriter.tobytes()
    assert plain.tobytes() != fade.tobytes()


@pytest.mark.parametrize("reveal", ["fade", "slide", "typewriter"])
def test_reveals_complete_at_end(compositor, luffy_quote, small_settings, reveal):
    plain = compositor.render_frame(None, luffy_quote, small_settings, 1.0)
    revealed = compositor.render_frame(None, luffy_quote, small_settings, 1.0, text_reveal=reveal)

    assert plain.tobytes() == revealed.tobytes()


@pytest.mark.parametrize("progress", [-3.0, 4.0])
def test_progress_is_clamped(compositor, luffy_quote, small_settings, progress):
    clamped = min(1.0, max(0.0, progress))

    out_of_range = compositor.render_frame(None, luffy_quote, small_settings, progress)
    in_range = compositor.render_frame(None, luffy_quote, small_settings, clamped)

    assert out_of_range.tobytes() == in_range.tobytes()


def test_image_effect_applied(compositor, luffy_quote, small_settings, background_image):
    effect = ImageEffectSettings(filter_type="grayscale", enabled=True)

    frame = compositor.render_frame(
        background_image, luffy_quote, small_settings, image_effect=effect
    )

    r, g, b = frame.getpixel((0, 0))
    assert r == g == b


def test_create_wallpaper(compositor, luffy_quote, small_settings, background_image, tmp_path):
    saved = compositor.create_wallpaper(
        background_image, luffy_quote, small_settings, tmp_path / "out" / "wall.png"
    )

    assert saved.exists()
    assert validate_image(saved) == "PNG"

    with Image.open(saved) as image:
        assert image.size == (320, 240)


def test_render_for_monitors(compositor, luffy_quote, small_settings, background_image):
    resolutions = {0: (320, 240), 1: (640, 360), 2: (800, 600)}

    frames = compositor.render_for_monitors(
        background_image, luffy_quote, small_settings, resolutions, max_workers=3
    )

    assert sorted(frames) == [0, 1, 2]
    for index, size in resolutions.items():
        assert frames[index].size == size


def test_render_for_monitors_empty(compositor, luffy_quote, small_settings):
    assert compositor.render_for_monitors(None, luffy_quote, small_settings, {}) == {}


def test_motion_layer_composites_on_success():
    canvas = Image.new("RGB", (20, 20), (0, 0, 0))

    with motion_layer(canvas, MotionTransform()) as layer:
        ImageDraw.Draw(layer).rectangle((0, 0, 19, 19), fill=(255, 0, 0, 255))

    assert canvas.getpixel((10, 10)) == (255, 0, 0)


def test_motion_layer_discarded_on_error():
    canvas = Image.new("RGB", (20, 20), (0, 0, 0))

    with pytest.raises(RuntimeError):
        with motion_layer(canvas, MotionTransform(scale=1.2, rotation=45)) as layer:
            ImageDraw.Draw(layer).rectangle((0, 0, 19, 19), fill=(255, 0, 0, 255))
            raise RuntimeError("drawing failed")

    assert canvas.getpixel((10, 10)) == (0, 0, 0)


def test_apply_motion_identity_returns_layer():
    layer = Image.new("RGBA", (10, 10))

    assert apply_motion(layer, MotionTransform()) is layer
    assert apply_motion(layer, MotionTransform(rotation=360)) is layer


def test_apply_motion_rotates_about_center():
    layer = Image.new("RGBA", (21, 21), (0, 0, 0, 0))
    layer.putpixel((10, 10), (255, 255, 255, 255))

    rotated = apply_motion(layer, MotionTransform(rotation=90))

    assert rotated.getpixel((10, 10))[3] > 0


@pytest.mark.parametrize(
    "progress, tags, expected",
    [
        (0.0, ("zoom",), MotionTransform(scale=0.8)),
        (1.0, ("zoom",), MotionTransform(scale=1.2)),
        (0.5, ("pan",), MotionTransform(offset_x=0.0)),
        (0.0, ("pan",), MotionTransform(offset_x=-100.0)),
        (1.0, ("pan",), MotionTransform(offset_x=100.0)),
        (0.25, ("rotation",), MotionTransform(rotation=90.0)),
        (0.5, ("wobble", "shake"), MotionTransform()),
        (0.5, (), MotionTransform()),
    ],
)
def test_motion_for(progress, tags, expected):
    motion = motion_for(progress, tags, 1000)

    assert motion.scale == pytest.approx(expected.scale)
    assert motion.rotation == pytest.approx(expected.rotation)
    assert motion.offset_x == pytest.approx(expected.offset_x)


def test_pulse_and_glow():
    assert pulse_offset(0.0) == pytest.approx(0.0)
    assert pulse_offset(0.25) == pytest.approx(10.0)
    assert pulse_offset(NEUTRAL_PROGRESS) == pytest.approx(0.0, abs=1e-9)

    assert glow_intensity(0.0) == pytest.approx(0.3)
    assert glow_intensity(0.125) == pytest.approx(0.5)
    assert all(0.1 <= glow_intensity(p / 100) <= 0.5 for p in range(101))
    assert math.isclose(glow_intensity(1.0), 0.3, abs_tol=1e-9)


def test_oversized_background_uses_solid_color(
    compositor, luffy_quote, small_settings, background_image, monkeypatch
):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10_000)

    frame = compositor.render_frame(background_image, luffy_quote, small_settings)

    assert frame.size == (320, 240)
    assert frame.getpixel((0, 0)) == (44, 62, 80)


def test_oversized_background_without_cache(
    luffy_quote, small_settings, background_image, monkeypatch
):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10_000)

    frame = Compositor().render_frame(background_image, luffy_quote, small_settings)

    assert frame.getpixel((0, 0)) == (44, 62, 80)
