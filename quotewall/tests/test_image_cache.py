"""
Tests for image_cache.py

Verify the cache bounds hold under arbitrary access patterns, that callers can never corrupt a
cached image, and that hits really do skip the disk.

The loader is injected into ImageCache, so most tests here pass a unittest.mock.Mock wrapping
load_image (to count disk reads) or a stub that fabricates images of a chosen size (to drive the
memory bound without writing large files).

*** Fixtures ***
- background_image, corrupt_image (defined in conftest.py)
- tmp_path (defined by Pytest)
"""

import random
import threading
import unittest.mock
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from PIL import Image, ImageDraw

from quotewall.image_cache import ImageCache, cache_key, estimate_memory
from quotewall.image_handler import InvalidImageError, load_image


def fabricated_loader(path, width=None, height=None):
    """Make up an image of the requested size without touching the disk."""

    return Image.new("RGB", (width or 10, height or 10), (255, 0, 0))


def test_repeated_request_hits_cache(background_image):
    loader = unittest.mock.Mock(wraps=load_image)
    cache = ImageCache(loader=loader)

    first = cache.get_or_load(background_image, 800, 600)
    second = cache.get_or_load(background_image, 800, 600)

    assert first.size == (800, 600)
    assert first.tobytes() == second.tobytes()
    assert loader.call_count == 1

    stats = cache.stats()
    assert stats.hits == 1
    assert stats.misses == 1
    assert stats.entries == 1


def test_different_sizes_are_different_entries(background_image):
    loader = unittest.mock.Mock(wraps=load_image)
    cache = ImageCache(loader=loader)

    cache.get_or_load(background_image, 800, 600)
    cache.get_or_load(background_image, 640, 480)
    cache.get_or_load(background_image)

    assert loader.call_count == 3
    assert len(cache) == 3


def test_returned_images_are_isolated(background_image):
    cache = ImageCache()

    image = cache.get_or_load(background_image, 320, 240)
    original = image.tobytes()

    ImageDraw.Draw(image).rectangle((0, 0, 319, 239), fill=(0, 0, 0))

    assert cache.get_or_load(background_image, 320, 240).tobytes() == original


def test_missing_file_returns_none(tmp_path):
    cache = ImageCache()

    assert cache.get_or_load(tmp_path / "nope.png", 800, 600) is None
    assert len(cache) == 0


def test_corrupt_file_returns_none(corrupt_image):
    cache = ImageCache()

    assert cache.get_or_load(corrupt_image, 800, 600) is None
    assert cache.stats().misses == 1


@pytest.mark.parametrize("path", [None, ""])
def test_empty_path_returns_none(path):
    loader = unittest.mock.Mock(wraps=load_image)

    assert ImageCache(loader=loader).get_or_load(path) is None
    loader.assert_not_called()


def test_entry_bound_evicts_least_recently_used():
    cache = ImageCache(max_entries=2, loader=fabricated_loader)

    cache.get_or_load("a.png", 10, 10)
    cache.get_or_load("b.png", 10, 10)
    cache.get_or_load("a.png", 10, 10)  # a is now most recently used
    cache.get_or_load("c.png", 10, 10)

    assert cache_key("a.png", 10, 10) in cache
    assert cache_key("b.png", 10, 10) not in cache
    assert cache_key("c.png", 10, 10) in cache
    assert cache.stats().evictions == 1


def test_memory_bound_evicts_before_insert():
    # room for exactly two 10x10 images
    cache = ImageCache(max_entries=10, max_memory_bytes=800, loader=fabricated_loader)

    cache.get_or_load("a.png", 10, 10)
    cache.get_or_load("b.png", 10, 10)
    cache.get_or_load("c.png", 10, 10)

    assert len(cache) == 2
    assert cache.memory_bytes == 800
    assert cache_key("a.png", 10, 10) not in cache


def test_oversized_image_served_but_not_cached():
    cache = ImageCache(max_memory_bytes=100, loader=fabricated_loader)

    image = cache.get_or_load("huge.png", 10, 10)

    assert image.size == (10, 10)
    assert len(cache) == 0
    assert cache.memory_bytes == 0


@pytest.mark.parametrize("seed", [0, 1, 7, 42, 1234])
def test_bounds_hold_under_random_operations(seed):
    rng = random.Random(seed)
    cache = ImageCache(max_entries=5, max_memory_bytes=20_000, loader=fabricated_loader)

    for _ in range(300):
        name = f"image_{rng.randint(0, 12)}.png"
        width, height = rng.choice([(10, 10), (20, 30), (40, 40), (60, 50), (80, 80)])
        operation = rng.random()

        if operation < 0.8:
            cache.get_or_load(name, width, height)
        elif operation < 0.95:
            cache.remove(name, width, height)
        else:
            cache.clear()

        stats = cache.stats()
        assert stats.entries <= cache.max_entries
        assert stats.memory_bytes <= cache.max_memory_bytes
        assert stats.memory_bytes >= 0


def test_remove_and_clear(background_image):
    cache = ImageCache()
    cache.get_or_load(background_image, 320, 240)
    cache.get_or_load(background_image, 640, 480)

    assert cache.remove(background_image, 320, 240) is True
    assert cache.remove(background_image, 320, 240) is False
    assert len(cache) == 1

    cache.clear()

    assert len(cache) == 0
    assert cache.memory_bytes == 0


def test_decode_error_is_not_raised():
    loader = unittest.mock.Mock(side_effect=InvalidImageError("broken"))

    assert ImageCache(loader=loader).get_or_load("broken.png", 10, 10) is None


@pytest.mark.parametrize(
    "width, height, suffix",
    [(None, None, "|original"), (800, 600, "|800x600"), (800, None, "|800x"), (None, 600, "|x600")],
)
def test_cache_key_size_suffix(width, height, suffix):
    assert cache_key("wall.png", width, height).endswith(suffix)


def test_cache_key_normalizes_path(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert cache_key("wall.png", 1, 1) == cache_key(Path.cwd() / "wall.png", 1, 1)
    assert cache_key(Path("sub/../wall.png"), 1, 1) == cache_key("wall.png", 1, 1)


def test_estimate_memory():
    assert estimate_memory(Image.new("RGB", (800, 600))) == 800 * 600 * 4


@pytest.mark.parametrize("max_entries, max_memory", [(0, 100), (5, 0)])
def test_invalid_bounds(max_entries, max_memory):
    with pytest.raises(ValueError):
        ImageCache(max_entries=max_entries, max_memory_bytes=max_memory)


def test_oversized_decode_returns_none(background_image, monkeypatch):
    """
    Pillow refuses to open images far past MAX_IMAGE_PIXELS. Lowering the limit lets the
    400x300 fixture stand in for a gigapixel file.
    """

    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10_000)
    cache = ImageCache()

    assert cache.get_or_load(background_image, 800, 600) is None
    assert len(cache) == 0


def test_home_relative_path_is_loaded(background_image, monkeypatch):
    monkeypatch.setenv("HOME", str(background_image.parent))
    monkeypatch.setenv("USERPROFILE", str(background_image.parent))
    cache = ImageCache()

    image = cache.get_or_load("~/background.png", 320, 240)

    assert image is not None
    assert image.size == (320, 240)
    assert cache_key("~/background.png", 320, 240) == cache_key(background_image, 320, 240)


def test_concurrent_access_keeps_bounds():
    cache = ImageCache(max_entries=4, max_memory_bytes=12_000, loader=fabricated_loader)
    calls_per_thread = 200
    threads = 8
    violations = []
    lock = threading.Lock()

    def worker(seed):
        rng = random.Random(seed)

        for _ in range(calls_per_thread):
            size = rng.choice([10, 20, 30, 40])
            cache.get_or_load(f"image_{rng.randint(0, 9)}.png", size, size)

            stats = cache.stats()
            if stats.entries > cache.max_entries or stats.memory_bytes > cache.max_memory_bytes:
                with lock:
                    violations.append(stats)

    with ThreadPoolExecutor(max_workers=threads) as executor:
        list(executor.map(worker, range(threads)))

    stats = cache.stats()
    assert violations == []
    assert stats.hits + stats.misses == threads * calls_per_thread
    assert stats.entries <= cache.max_entries
    assert stats.memory_bytes <= cache.max_memory_bytes
    assert stats.memory_bytes == sum(
        size * size * 4
        for size in (10, 20, 30, 40)
        for name in range(10)
        if cache_key(f"image_{name}.png", size, size) in cache
    )
