"""Call budget for external summarization requests.

Responsibilities:
- Cap the number of concurrently in-flight provider calls.
- Enforce per-minute and per-hour call windows plus a minimum spacing.
- Keep pacing state on one injected object instead of module globals.

Callers over the concurrency ceiling block on a semaphore; callers over a
window budget sleep until that window resets.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
import threading
from time import monotonic, sleep
from typing import Callable

_MINUTE_SECONDS = 60.0
_HOUR_SECONDS = 3600.0


@dataclass(slots=True)
class CallBudget:
    """Concurrency and time-window limiter shared by all enhancement calls."""

    max_concurrent: int = 5
    per_minute: int = 20
    per_hour: int = 300
    min_interval_seconds: float = 0.5
    clock: Callable[[], float] = monotonic
    sleeper: Callable[[float], None] = sleep
    _slots: threading.BoundedSemaphore | None = field(init=False, default=None, repr=False)
    _lock: threading.Lock = field(init=False, default_factory=threading.Lock, repr=False)
    _minute_started_at: float | None = field(init=False, default=None, repr=False)
    _minute_calls: int = field(init=False, default=0, repr=False)
    _hour_started_at: float | None = field(init=False, default=None, repr=False)
    _hour_calls: int = field(init=False, default=0, repr=False)
    _next_allowed_at: float = field(init=False, default=0.0, repr=False)
    _in_flight: int = field(init=False, default=0, repr=False)

    def __post_init__(self) -> None:
        """Validate limits and build the concurrency semaphore."""

        for name in ("max_concurrent", "per_minute", "per_hour"):
            if int(getattr(self, name)) < 1:
                raise ValueError(f"`{name}` must be a positive integer.")
        if self.min_interval_seconds < 0.0:
            raise ValueError("`min_interval_seconds` must be zero or greater.")
        self._slots = threading.BoundedSemaphore(self.max_concurrent)

    @property
    def in_flight(self) -> int:
        """Return how many calls currently hold a slot."""

        with self._lock:
            return self._in_flight

    def acquire(self) -> None:
        """Block until one call may start, then hold a concurrency slot."""

        assert self._slots is not None
        self._slots.acquire()
        try:
            self._reserve_window_capacity()
        except BaseException:
            self._slots.release()
            raise
        with self._lock:
            self._in_flight += 1

    def release(self) -> None:
        """Return a concurrency slot taken by `acquire`."""

        assert self._slots is not None
        with self._lock:
            self._in_flight -= 1
        self._slots.release()

    @contextmanager
    def slot(self) -> Iterator[None]:
        """Hold one budgeted call slot for the duration of the block."""

        self.acquire()
        try:
            yield
        finally:
            self.release()

    def _reserve_window_capacity(self) -> None:
        """Sleep outside the lock until both windows and the spacing allow a call."""

        while True:
            with self._lock:
                now = self.clock()
                self._roll_windows(now)
                wait_seconds = self._wait_seconds(now)
                if wait_seconds <= 0.0:
                    self._minute_calls += 1
                    self._hour_calls += 1
                    self._next_allowed_at = now + self.min_interval_seconds
                    return
            self.sleeper(wait_seconds)

    def _roll_windows(self, now: float) -> None:
        """Start fresh minute/hour windows once the current ones have elapsed."""

        if self._minute_started_at is None or now - self._minute_started_at >= _MINUTE_SECONDS:
            self._minute_started_at = now
            self._minute_calls = 0
        if self._hour_started_at is None or now - self._hour_started_at >= _HOUR_SECONDS:
            self._hour_started_at = now
            self._hour_calls = 0

    def _wait_seconds(self, now: float) -> float:
        """Return how long the next call must wait under the current windows."""

        waits = [self._next_allowed_at - now]
        if self._minute_calls >= self.per_minute and self._minute_started_at is not None:
            waits.append(self._minute_started_at + _MINUTE_SECONDS - now)
        if self._hour_calls >= self.per_hour and self._hour_started_at is not None:
            waits.append(self._hour_started_at + _HOUR_SECONDS - now)
        return max(waits)
