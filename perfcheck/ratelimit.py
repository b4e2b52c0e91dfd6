"""
Aggregate rate control for evaluation workers.

Problem: every worker loops as fast as the target allows, so N workers can
easily exceed the invocation rate the test author asked for.

Solution: one RateController shared by all workers of an evaluation. Each
acquire() reserves the next free slot on a fixed-interval schedule, then
sleeps until that slot. Slots are handed out in the order callers reach the
lock, so no worker starves.

Usage:
    controller = RateController(max_per_second=100)

    while controller.acquire(deadline=deadline, stop_event=stop):
        invoke()
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass
class RateControllerStats:
    """Snapshot of rate controller state."""
    max_per_second: int
    total_acquired: int
    total_rejected: int
    waiting: int


class RateController:
    """
    Thread-safe rate limiter shared across all workers.

    Design:
    - Reservation schedule with interval 1/max_per_second
    - Sleeping happens outside the lock
    - Never sleeps past the caller's deadline; wakes early on stop
    - max_per_second == 0 disables limiting
    """

    def __init__(
        self,
        max_per_second: int = 0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            max_per_second: Aggregate permits per second. 0 = unbounded.
            clock: Monotonic clock in seconds. Deadlines use the same clock.
        """
        if max_per_second < 0:
            raise ValueError("max_per_second must be >= 0")

        self._max_per_second = max_per_second
        self._interval = 1.0 / max_per_second if max_per_second > 0 else 0.0
        self._clock = clock

        self._lock = threading.Lock()
        self._next_free: Optional[float] = None

        self._total_acquired = 0
        self._total_rejected = 0
        self._waiting = 0

    @property
    def max_per_second(self) -> int:
        return self._max_per_second

    @property
    def unlimited(self) -> bool:
        return self._max_per_second == 0

    def acquire(
        self,
        deadline: Optional[float] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> bool:
        """
        Block until a permit is available.

        Args:
            deadline: Clock value past which no permit is granted.
            stop_event: Wakes the caller early when set.

        Returns:
            True when a permit was granted, False when the deadline would be
            exceeded or the stop event fired.
        """
        now = self._clock()

        if self.unlimited:
            if deadline is not None and now >= deadline:
                return self._reject()
            if stop_event is not None and stop_event.is_set():
                return self._reject()
            with self._lock:
                self._total_acquired += 1
            return True

        with self._lock:
            slot = now if self._next_free is None else max(now, self._next_free)
            if deadline is not None and slot >= deadline:
                self._total_rejected += 1
                return False
            self._next_free = slot + self._interval
            self._total_acquired += 1
            self._waiting += 1

        try:
            delay = slot - now
            if delay > 0:
                if stop_event is not None:
                    if stop_event.wait(delay):
                        with self._lock:
                            self._total_acquired -= 1
                            self._total_rejected += 1
                        return False
                else:
                    time.sleep(delay)
            elif stop_event is not None and stop_event.is_set():
                with self._lock:
                    self._total_acquired -= 1
                    self._total_rejected += 1
                return False
            return True
        finally:
            with self._lock:
                self._waiting -= 1

    def _reject(self) -> bool:
        with self._lock:
            self._total_rejected += 1
        return False

    def stats(self) -> RateControllerStats:
        """Current controller state for monitoring."""
        with self._lock:
            return RateControllerStats(
                max_per_second=self._max_per_second,
                total_acquired=self._total_acquired,
                total_rejected=self._total_rejected,
                waiting=self._waiting,
            )
