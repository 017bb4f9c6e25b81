"""
Image Cache

A bounded, thread-safe store of decoded background images keyed by file path and target size.
Rendering the same background for several monitors, or for every frame of an animation, should
only hit the disk once.

The cache is bounded two ways: by number of entries and by estimated memory (width * height * 4
bytes per image). Before every insert the least recently used entries are evicted until both
bounds hold for the incoming image. An image that on its own is larger than the memory bound is
handed back to the caller but never stored.

Every image handed out is a copy. Callers are free to draw on what they get back without
corrupting the cached original, and the cache is free to close evicted images without pulling
pixels out from under a caller.

One instance is meant to be constructed at startup and passed to the Compositor explicitly.
"""

import logging
import os
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from PIL import Image

from quotewall.image_handler import InvalidImageError, load_image

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 50
DEFAULT_MAX_MEMORY_BYTES = 500 * 1024 * 1024  # 500MB


@dataclass
class CacheEntry:
    image: Image.Image
    last_accessed: float
    memory_bytes: int


@dataclass(frozen=True)
class CacheStats:
    entries: int
    memory_bytes: int
    hits: int
    misses: int
    evictions: int


def estimate_memory(image: Image.Image) -> int:
    """Rough estimate of the decoded size of image: width * height * 4 bytes (RGBA)."""

    width, height = image.size
    return width * height * 4


def cache_key(
    path: Union[str, Path], width: Optional[int] = None, height: Optional[int] = None
) -> str:
    """
    Build the cache key for a path and requested size: the normalized absolute path plus either
    'original' or '<w>x<h>' (a missing dimension is left blank, e.g. '800x').
    """

    normalized = os.path.normcase(os.path.abspath(os.fspath(Path(path).expanduser())))

    if width is None and height is None:
        size_key = "original"
    else:
        size_key = f"{'' if width is None else width}x{'' if height is None else height}"

    return f"{normalized}|{size_key}"


class ImageCache:
    """
    LRU + memory bounded cache of decoded images.

    The OrderedDict keeps entries in access order (oldest first), so the least recently used
    entry is always at the front. last_accessed timestamps are kept on each entry as well for
    introspection and for collaborators that want to expire stale entries.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_memory_bytes: int = DEFAULT_MAX_MEMORY_BYTES,
        loader: Callable[..., Image.Image] = load_image,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1.")

        if max_memory_bytes < 1:
            raise ValueError("max_memory_bytes must be positive.")

        self.max_entries = max_entries
        self.max_memory_bytes = max_memory_bytes
        self._loader = loader

        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._memory_bytes = 0

        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get_or_load(
        self,
        path: Union[str, Path],
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> Optional[Image.Image]:
        """
        Return a copy of the cached image for (path, width, height), decoding it from disk on a
        miss. Returns None when the file is missing or cannot be decoded: callers should treat
        that the same as having no background at all.
        """

        if not path:
            return None

        key = cache_key(path, width, height)

        with self._lock:
            entry = self._entries.get(key)

            if entry is not None:
                entry.last_accessed = time.monotonic()
                self._entries.move_to_end(key)
                self.hits += 1
                return entry.image.copy()

            self.misses += 1

        # decode outside of the lock so one slow disk read doesn't stall every other renderer.
        # two threads missing on the same key at once both decode; the second insert wins.
        try:
            image = self._loader(path, width, height)

        except InvalidImageError as error:
            logger.debug("cache miss for %s could not be decoded: %s", path, error)
            return None

        memory = estimate_memory(image)

        if memory > self.max_memory_bytes:
            logger.debug(
                "%s needs %d bytes, more than the whole cache (%d); serving uncached",
                path,
                memory,
                self.max_memory_bytes,
            )
            return image

        with self._lock:
            self._discard(key)
            self._evict_for(memory)
            self._entries[key] = CacheEntry(
                image=image.copy(), last_accessed=time.monotonic(), memory_bytes=memory
            )
            self._memory_bytes += memory

        return image

    def remove(
        self,
        path: Union[str, Path],
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> bool:
        """Drop a single entry. Returns whether anything was removed."""

        with self._lock:
            return self._discard(cache_key(path, width, height))

    def clear(self):
        """Remove every entry and free their memory. Counters are left alone."""

        with self._lock:
            for entry in self._entries.values():
                entry.image.close()

            self._entries.clear()
            self._memory_bytes = 0

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                entries=len(self._entries),
                memory_bytes=self._memory_bytes,
                hits=self.hits,
                misses=self.misses,
                evictions=self.evictions,
            )

    @property
    def memory_bytes(self) -> int:
        return self._memory_bytes

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key: str):
        return key in self._entries

    # the helpers below must be called with self._lock held

    def _discard(self, key: str) -> bool:
        entry = self._entries.pop(key, None)

        if entry is None:
            return False

        self._memory_bytes -= entry.memory_bytes
        entry.image.close()
        return True

    def _evict_for(self, incoming_bytes: int):
        """
        Evict least recently used entries until there is room for one more entry of
        incoming_bytes without breaking either bound.
        """

        while self._entries and (
            len(self._entries) >= self.max_entries
            or self._memory_bytes + incoming_bytes > self.max_memory_bytes
        ):
            key, entry = self._entries.popitem(last=False)
            self._memory_bytes -= entry.memory_bytes
            entry.image.close()
            self.evictions += 1
            logger.debug("evicted %s (%d bytes)", key, entry.memory_bytes)
