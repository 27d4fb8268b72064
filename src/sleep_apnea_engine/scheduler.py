"""Periodic task scheduling for the detection loop.

The detector only talks to the ``Scheduler`` interface, so tests can drive
ticks by hand without real time passing.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ScheduledTask(ABC):
    """Handle of a periodic task."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop the task. Idempotent."""

    @property
    @abstractmethod
    def active(self) -> bool:
        """True until cancelled."""


class Scheduler(ABC):
    """Runs a callable every ``interval`` seconds."""

    @abstractmethod
    def schedule(self, interval: float, fn: Callable[[], None]) -> ScheduledTask:
        """Start calling ``fn`` every ``interval`` seconds."""


class _ThreadTask(ScheduledTask):
    def __init__(self, interval: float, fn: Callable[[], None], name: str):
        self.interval = interval
        self.fn = fn
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.fn()
            except Exception as e:
                logger.error(f"Error in scheduled task {self._thread.name}: {e}", exc_info=True)

    def cancel(self) -> None:
        self._stop.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=self.interval + 1.0)

    @property
    def active(self) -> bool:
        return not self._stop.is_set()


class ThreadScheduler(Scheduler):
    """Runs each periodic task on its own daemon thread."""

    def __init__(self, name: str = "apnea-detector"):
        self.name = name
        self._count = 0

    def schedule(self, interval: float, fn: Callable[[], None]) -> ScheduledTask:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._count += 1
        task = _ThreadTask(interval, fn, name=f"{self.name}-{self._count}")
        task.start()
        logger.debug(f"Scheduled task {task._thread.name} every {interval:.3f}s")
        return task


class ManualScheduler(Scheduler):
    """Scheduler driven explicitly through ``advance(seconds)``.

    Keeps a virtual time and fires every due task in order. Useful for
    offline replay and tests.
    """

    def __init__(self, clock: Optional["ManualClock"] = None):
        self.clock = clock or ManualClock()
        self._tasks = []

    def schedule(self, interval: float, fn: Callable[[], None]) -> ScheduledTask:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        task = _ManualTask(interval, fn, self.clock.now + interval)
        self._tasks.append(task)
        return task

    @property
    def tasks(self):
        """Tasks that have not been cancelled."""
        return [t for t in self._tasks if t.active]

    def advance(self, seconds: float) -> int:
        """Move virtual time forward, running due tasks.

        Returns:
            Number of task invocations.
        """
        target = self.clock.now + seconds
        fired = 0
        while True:
            # tolerate float drift from repeated interval additions
            due = [t for t in self._tasks if t.active and t.next_run <= target + 1e-9]
            if not due:
                break
            task = min(due, key=lambda t: t.next_run)
            self.clock.now = task.next_run
            task.next_run += task.interval
            task.fn()
            fired += 1
        self.clock.now = max(target, self.clock.now)
        return fired


class ManualClock:
    """A clock whose time only moves when told to."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class _ManualTask(ScheduledTask):
    def __init__(self, interval: float, fn: Callable[[], None], next_run: float):
        self.interval = interval
        self.fn = fn
        self.next_run = next_run
        self._active = True

    def cancel(self) -> None:
        self._active = False

    @property
    def active(self) -> bool:
        return self._active
