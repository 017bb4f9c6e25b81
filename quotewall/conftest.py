"""
conftest.py

Test configuration for quotewall tests.

Defines Pytest fixtures for supplying test data to tests across the entire test suite. Fixtures
used within only a single module are defined directly in that module. Test images are generated
with Pillow into tmp_path rather than checked in, so every test gets files it is free to delete
or corrupt.
"""

from pathlib import Path

import pytest
from PIL import Image, ImageDraw

from quotewall.compositor import Compositor
from quotewall.image_cache import ImageCache
from quotewall.models import Quote, RenderSettings


@pytest.fixture
def luffy_quote() -> Quote:
    return Quote(
        text="I'm gonna be King of the Pirates!",
        speaker="Monkey D. Luffy",
        source="One Piece",
        categories={"Motivation"},
        tags={"dream"},
    )


@pytest.fixture
def long_quote() -> Quote:
    return Quote(
        text=(
            "If you don't take risks, you can't create a future! Power isn't determined by "
            "your size, but the size of your heart and dreams."
        ),
        speaker="Monkey D. Luffy",
        source="One Piece",
    )


@pytest.fixture
def small_settings() -> RenderSettings:
    """The smallest resolution that passes validation keeps rendering tests fast."""

    return RenderSettings(width=320, height=240)


@pytest.fixture
def background_image(tmp_path) -> Path:
    """
    Write a 400x300 gradient with a few shapes to tmp_path. Not a flat color, so filters and
    resizes actually change pixels.
    """

    image = Image.new("RGB", (400, 300))
    draw = ImageDraw.Draw(image)

    for x in range(400):
        draw.line([(x, 0), (x, 299)], fill=(x * 255 // 400, 80, 255 - x * 255 // 400))

    draw.ellipse((50, 50, 150, 150), fill=(250, 220, 10))
    draw.rectangle((250, 180, 380, 280), fill=(20, 200, 90))

    path = tmp_path / "background.png"
    image.save(path)
    image.close()
    return path


@pytest.fixture
def corrupt_image(tmp_path) -> Path:
    path = tmp_path / "corrupt.png"
    path.write_bytes(b"this is not an image at all")
    return path


@pytest.fixture
def image_cache() -> ImageCache:
    return ImageCache(max_entries=8, max_memory_bytes=64 * 1024 * 1024)


@pytest.fixture
def compositor(image_cache) -> Compositor:
    return Compositor(cache=image_cache)


@pytest.fixture
def frame_files(tmp_path) -> list:
    """Three distinct solid color PNG frames named the way the frame sequencer names them."""

    colors = [(200, 30, 30), (30, 200, 30), (30, 30, 200)]
    frames_dir = tmp_path / "frames"
    frames_dir.mkdir()

    paths = []
    for i, color in enumerate(colors):
        path = frames_dir / f"frame_{i:03d}.png"
        Image.new("RGB", (64, 48), color).save(path)
        paths.append(path)

    return paths
