"""Byte-bounded least-recently-used cache."""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Callable, Hashable, Optional

EvictCallback = Callable[[Hashable, bytes], None]


class LRUCache:
    """LRU cache whose capacity is measured in bytes of stored values.

    A ``max_bytes`` of zero means no limit.
    """

    def __init__(self, max_bytes: int = 0, on_evicted: Optional[EvictCallback] = None) -> None:
        self.max_bytes = max_bytes
        self.on_evicted = on_evicted
        self._lock = threading.RLock()
        self._entries: OrderedDict[Hashable, bytes] = OrderedDict()
        self._current = 0

    def add(self, key: Hashable, value: bytes) -> None:
        """Store ``value`` under ``key`` and mark it most recently used."""
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                self._current += len(value) - len(self._entries[key])
                self._entries[key] = value
                return

            self._current += len(value)
            self._entries[key] = value
            if self.max_bytes and self._current > self.max_bytes:
                self._remove_oldest()

    def get(self, key: Hashable) -> Optional[bytes]:
        """Return the value for ``key``, or None when absent."""
        with self._lock:
            value = self._entries.get(key)
            if value is not None:
                self._entries.move_to_end(key)
            return value

    def remove(self, key: Hashable) -> None:
        """Drop ``key`` from the cache if present."""
        with self._lock:
            if key in self._entries:
                self._evict(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        """Purge every entry, reporting each to ``on_evicted``."""
        with self._lock:
            if self.on_evicted is not None:
                for key, value in self._entries.items():
                    self.on_evicted(key, value)
            self._entries = OrderedDict()
            self._current = 0

    def _remove_oldest(self) -> None:
        if self._entries:
            self._evict(next(iter(self._entries)))

    def _evict(self, key: Hashable) -> None:
        value = self._entries.pop(key)
        self._current -= len(value)
        if self.on_evicted is not None:
            self.on_evicted(key, value)