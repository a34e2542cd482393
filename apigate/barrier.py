"""Rate barrier that lets a fixed share of calls through."""

import itertools
import random
import threading

_sources_lock = threading.Lock()
_sources: dict[int, tuple[int, ...]] = {}


def _rand_source(base: int) -> tuple[int, ...]:
    with _sources_lock:
        source = _sources.get(base)
        if source is None:
            values = list(range(base))
            random.shuffle(values)
            source = tuple(values)
            _sources[base] = source
        return source


class RateBarrier:
    """Allows ``rate`` out of every ``base`` consecutive calls."""

    def __init__(self, rate: int, base: int = 100) -> None:
        if base <= 0:
            raise ValueError("base must be positive")
        self.rate = rate
        self.base = base
        self._source = _rand_source(base)
        self._ops = itertools.count(1)

    def allow(self) -> bool:
        """Return True if this call is let through."""
        return self._source[next(self._ops) % self.base] < self.rate