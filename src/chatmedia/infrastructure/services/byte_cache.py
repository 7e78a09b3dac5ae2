"""LRU in-memory cache of fetched media bytes."""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Tuple

from ...config import BYTE_CACHE_MAX_ENTRIES
from ...domain.models import FidelityTier

_Key = Tuple[str, FidelityTier]


class MediaByteCache:
    """LRU memory cache for bytes keyed by ``(image_id, tier)``.

    Evicts the least-recently-used entry when *max_entries* is exceeded.
    Guarded by a lock because the presentation layer may read from a worker
    thread while the scheduler writes on the GUI thread.
    """

    def __init__(self, max_entries: int = BYTE_CACHE_MAX_ENTRIES):
        self._cache: OrderedDict[_Key, bytes] = OrderedDict()
        self._max_entries = max_entries
        self._lock = threading.Lock()

    def get(self, image_id: str, tier: FidelityTier) -> bytes | None:
        key = (image_id, tier)
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
                return self._cache[key]
            return None

    def best(self, image_id: str) -> tuple[FidelityTier, bytes] | None:
        """Return the highest cached tier for *image_id*."""
        with self._lock:
            for tier in sorted(FidelityTier, reverse=True):
                data = self._cache.get((image_id, tier))
                if data is not None:
                    return tier, data
        return None

    def put(self, image_id: str, tier: FidelityTier, data: bytes) -> None:
        key = (image_id, tier)
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            elif len(self._cache) >= self._max_entries:
                self._cache.popitem(last=False)
            self._cache[key] = data

    def invalidate(self, image_id: str) -> int:
        with self._lock:
            keys = [key for key in self._cache if key[0] == image_id]
            for key in keys:
                del self._cache[key]
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._cache)

    @property
    def memory_usage_bytes(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._cache.values())
