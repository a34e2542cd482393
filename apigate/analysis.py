"""Per-target request statistics sampled over fixed periods."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_NANOS_PER_MILLI = 1000 * 1000


class Timeout:
    """Handle to a callback scheduled on a :class:`TimeoutWheel`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._done = False

    def stop(self) -> bool:
        """Cancel the callback; return True if it had not yet run."""
        with self._lock:
            if self._done:
                return False
            self._done = True
            return True

    def _claim(self) -> bool:
        with self._lock:
            if self._done:
                return False
            self._done = True
            return True


class TimeoutWheel:
    """Runs scheduled callbacks on a background thread."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._heap: list[tuple[float, int, Timeout, Callable[[Any], None], Any]] = []
        self._seq = itertools.count()
        self._stopped = False
        self._thread = threading.Thread(target=self._run, name="timeout-wheel", daemon=True)
        self._thread.start()

    def schedule(self, delay: float, callback: Callable[[Any], None], arg: Any) -> Timeout:
        """Run ``callback(arg)`` after ``delay`` seconds."""
        timeout = Timeout()
        with self._cond:
            if self._stopped:
                raise RuntimeError("timeout wheel is stopped")
            entry = (time.monotonic() + delay, next(self._seq), timeout, callback, arg)
            heapq.heappush(self._heap, entry)
            self._cond.notify()
        return timeout

    def stop(self) -> None:
        """Stop the wheel; pending callbacks never run."""
        with self._cond:
            self._stopped = True
            self._cond.notify_all()
        if threading.current_thread() is not self._thread:
            self._thread.join()

    def __enter__(self) -> "TimeoutWheel":
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

    def _run(self) -> None:
        while True:
            with self._cond:
                entry = None
                while not self._stopped:
                    if not self._heap:
                        self._cond.wait()
                        continue
                    remaining = self._heap[0][0] - time.monotonic()
                    if remaining <= 0:
                        entry = heapq.heappop(self._heap)
                        break
                    self._cond.wait(remaining)
                if self._stopped:
                    return
            _, _, timeout, callback, arg = entry
            if timeout._claim():
                try:
                    callback(arg)
                except Exception:
                    logger.exception("timeout callback failed")


class _Point:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.requests = 0
        self.rejects = 0
        self.failure = 0
        self.successed = 0
        self.continuous_failure = 0
        self.costs = 0
        self.max = 0
        self.min = 0

    def dump(self, target: "_Point") -> None:
        with self._lock:
            snapshot = (
                self.requests,
                self.rejects,
                self.failure,
                self.successed,
                self.max,
                self.min,
                self.costs,
            )
            self.min = 0
            self.max = 0
        with target._lock:
            (
                target.requests,
                target.rejects,
                target.failure,
                target.successed,
                target.max,
                target.min,
                target.costs,
            ) = snapshot

    def add_request(self) -> None:
        with self._lock:
            self.requests += 1

    def add_reject(self) -> None:
        with self._lock:
            self.rejects += 1

    def add_failure(self) -> None:
        with self._lock:
            self.failure += 1
            self.continuous_failure += 1

    def add_response(self, cost: int) -> None:
        with self._lock:
            self.successed += 1
            self.costs += cost
            self.continuous_failure = 0
            if self.max < cost:
                self.max = cost
            if self.min == 0 or self.min > cost:
                self.min = cost


@dataclass(eq=False)
class Recently:
    """Statistics for one target over its most recent period."""

    key: int
    period: float
    timeout: Any = None
    qps: int = 0
    requests: int = 0
    successed: int = 0
    failure: int = 0
    rejects: int = 0
    max: int = 0
    min: int = 0
    avg: int = 0
    prev: _Point = field(default_factory=_Point, init=False, repr=False)
    current: _Point = field(default_factory=_Point, init=False, repr=False)
    dump_prev: bool = field(default=False, init=False, repr=False)

    def record(self, point: _Point) -> None:
        """Take a sample of ``point``, recomputing on alternate samples."""
        if not self.dump_prev:
            point.dump(self.current)
            self._calc()
        else:
            point.dump(self.prev)
        self.dump_prev = not self.dump_prev

    def _calc(self) -> None:
        cur, prev = self.current, self.prev
        if cur.requests == prev.requests:
            return

        self.requests = max(cur.requests - prev.requests, 0)
        self.successed = max(cur.successed - prev.successed, 0)
        self.failure = max(cur.failure - prev.failure, 0)
        self.rejects = max(cur.rejects - prev.rejects, 0)
        self.max = 0 if cur.max < 0 else cur.max // _NANOS_PER_MILLI
        self.min = 0 if cur.min < 0 else cur.min // _NANOS_PER_MILLI

        costs = cur.costs - prev.costs
        self.avg = 0 if self.requests == 0 else costs // _NANOS_PER_MILLI // self.requests

        seconds = int(self.period)
        if seconds <= 0:
            self.qps = 0
        elif self.successed > self.requests:
            self.qps = self.requests // seconds
        else:
            self.qps = self.successed // seconds


class Analysis:
    """Collects request counters per key and samples them periodically."""

    def __init__(self, wheel: Any) -> None:
        self._wheel = wheel
        self._lock = threading.Lock()
        self._points: dict[int, _Point] = {}
        self._recently: dict[int, dict[float, Recently]] = {}

    def add_target(self, key: int, interval: float) -> None:
        """Start sampling ``key`` every ``interval`` seconds."""
        if not interval:
            return
        with self._lock:
            self._points.setdefault(key, _Point())
            periods = self._recently.setdefault(key, {})
            if interval in periods:
                logger.info("analysis: already added, key=<%d> interval=<%s>", key, interval)
                return
            recently = Recently(key, interval)
            periods[interval] = recently
        recently.timeout = self._wheel.schedule(interval, self._recently_timeout, recently)
        logger.info("analysis: added, key=<%d> interval=<%s>", key, interval)

    def remove_target(self, key: int) -> None:
        """Stop sampling ``key`` and forget its counters."""
        with self._lock:
            periods = self._recently.pop(key, {})
            self._points.pop(key, None)
        for recently in periods.values():
            if recently.timeout is not None:
                recently.timeout.stop()

    def get_recently_request_count(self, server: int, interval: float) -> int:
        recently = self._get(server, interval)
        return 0 if recently is None else recently.requests

    def get_recently_max(self, server: int, interval: float) -> int:
        recently = self._get(server, interval)
        return 0 if recently is None else recently.max

    def get_recently_min(self, server: int, interval: float) -> int:
        recently = self._get(server, interval)
        return 0 if recently is None else recently.min

    def get_recently_avg(self, server: int, interval: float) -> int:
        recently = self._get(server, interval)
        return 0 if recently is None else recently.avg

    def get_qps(self, server: int, interval: float) -> int:
        recently = self._get(server, interval)
        return 0 if recently is None else recently.qps

    def get_recently_reject_count(self, server: int, interval: float) -> int:
        recently = self._get(server, interval)
        return 0 if recently is None else recently.rejects

    def get_recently_request_successed_rate(self, server: int, interval: float) -> int:
        recently = self._get(server, interval)
        if recently is None:
            return 0
        handled = recently.requests - recently.rejects
        if handled <= 0:
            return 100
        return recently.successed * 100 // handled

    def get_recently_request_failure_rate(self, server: int, interval: float) -> int:
        recently = self._get(server, interval)
        if recently is None:
            return 100
        handled = recently.requests - recently.rejects
        if handled <= 0:
            return -1
        return recently.failure * 100 // handled

    def get_recently_request_successed_count(self, server: int, interval: float) -> int:
        recently = self._get(server, interval)
        return 0 if recently is None else recently.successed

    def get_recently_request_failure_count(self, server: int, interval: float) -> int:
        recently = self._get(server, interval)
        return 0 if recently is None else recently.failure

    def get_continuous_failure_count(self, key: int) -> int:
        point = self._points.get(key)
        return 0 if point is None else point.continuous_failure

    def reject(self, key: int) -> None:
        point = self._points.get(key)
        if point is not None:
            point.add_reject()

    def failure(self, key: int) -> None:
        point = self._points.get(key)
        if point is not None:
            point.add_failure()

    def request(self, key: int) -> None:
        point = self._points.get(key)
        if point is not None:
            point.add_request()

    def response(self, key: int, cost: int) -> None:
        """Record a successful response that took ``cost`` nanoseconds."""
        point = self._points.get(key)
        if point is not None:
            point.add_response(cost)

    def _get(self, key: int, interval: float) -> Optional[Recently]:
        periods = self._recently.get(key)
        if periods is None:
            return None
        return periods.get(interval)

    def _recently_timeout(self, recently: Recently) -> None:
        point = self._points.get(recently.key)
        if point is None:
            return
        recently.record(point)
        recently.timeout = self._wheel.schedule(recently.period, self._recently_timeout, recently)