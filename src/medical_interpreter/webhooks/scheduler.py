"""Delayed task execution for webhook attempts.

``ThreadingScheduler`` runs each task on a ``threading.Timer``.
``ManualScheduler`` keeps a virtual clock so tests can step through backoff
delays without sleeping.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable

logger = logging.getLogger(__name__)

Task = Callable[[], None]


class DelayedTaskScheduler(ABC):
    @abstractmethod
    def call_later(self, delay: float, task: Task) -> None:
        """Run ``task`` once, ``delay`` seconds from now."""


class ThreadingScheduler(DelayedTaskScheduler):
    """Production scheduler: one timer thread per pending task."""

    def __init__(self) -> None:
        self._timers: set[threading.Timer] = set()
        self._lock = threading.Lock()

    def call_later(self, delay: float, task: Task) -> None:
        timer: threading.Timer

        def run() -> None:
            try:
                task()
            except Exception:  # noqa: BLE001
                logger.exception("Scheduled task failed")
            finally:
                with self._lock:
                    self._timers.discard(timer)

        timer = threading.Timer(max(0.0, delay), run)
        timer.name = "webhook-task"
        with self._lock:
            self._timers.add(timer)
        timer.start()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._timers)

    def wait(self, timeout: float | None = None) -> None:
        """Block until pending tasks have run.

        With no timeout this also waits for tasks those tasks schedule.
        """
        while True:
            with self._lock:
                timers = list(self._timers)
            if not timers:
                return
            for timer in timers:
                timer.join(timeout)
            if timeout is not None:
                return


class ManualScheduler(DelayedTaskScheduler):
    """Virtual-time scheduler; tasks only run when the clock is advanced."""

    def __init__(self) -> None:
        self.now = 0.0
        self.delays: list[float] = []
        self._queue: list[tuple[float, int, Task]] = []
        self._counter = itertools.count()

    def call_later(self, delay: float, task: Task) -> None:
        self.delays.append(delay)
        heapq.heappush(self._queue, (self.now + delay, next(self._counter), task))

    @property
    def pending(self) -> int:
        return len(self._queue)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running every task that comes due in order.

        Returns:
            Number of tasks run.
        """
        deadline = self.now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= deadline:
            due, _, task = heapq.heappop(self._queue)
            self.now = due
            task()
            ran += 1
        self.now = deadline
        return ran

    def run_until_idle(self, limit: int = 1000) -> int:
        """Run tasks (jumping the clock) until none remain."""
        ran = 0
        while self._queue and ran < limit:
            due, _, task = heapq.heappop(self._queue)
            self.now = due
            task()
            ran += 1
        return ran
