"""
Clock and scheduler seams.

Delayed state changes (bundle settlement) are scheduled tasks keyed by the
entity they act on, so they can be cancelled and, in tests, driven
deterministically with ManualScheduler instead of wall-clock sleeps.
"""

from __future__ import annotations
import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


# ==============================================================================
# CLOCKS
# ==============================================================================

class Clock(ABC):

    @abstractmethod
    def now(self) -> float:
        """Seconds since the epoch."""

    def now_ms(self) -> int:
        return int(self.now() * 1000)


class SystemClock(Clock):

    def now(self) -> float:
        return time.time()


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def set(self, value: float) -> None:
        with self._lock:
            if value < self._now:
                raise ValueError("ManualClock cannot move backwards")
            self._now = value

    def advance(self, seconds: float) -> None:
        with self._lock:
            if seconds < 0:
                raise ValueError("ManualClock cannot move backwards")
            self._now += seconds


# ==============================================================================
# SCHEDULERS
# ==============================================================================

class Scheduler(ABC):
    """
    Keyed delayed tasks.

    Scheduling a key that is already pending replaces the old task.
    """

    @abstractmethod
    def schedule(self, key: str, delay: float, callback: Callback) -> None:
        ...

    @abstractmethod
    def cancel(self, key: str) -> bool:
        """Cancel a pending task. Returns False if nothing was pending."""

    @abstractmethod
    def pending(self) -> List[str]:
        ...

    def cancel_all(self) -> int:
        return sum(1 for key in self.pending() if self.cancel(key))


def _run(key: str, callback: Callback) -> None:
    try:
        callback()
    except Exception as e:
        logger.error(f"Scheduled task {key} failed: {e}", exc_info=True)


class ThreadingScheduler(Scheduler):
    """One daemon threading.Timer per key."""

    def __init__(self):
        self._timers: Dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule(self, key: str, delay: float, callback: Callback) -> None:
        timer = threading.Timer(max(delay, 0.0), self._fire, args=(key, callback))
        timer.daemon = True

        with self._lock:
            previous = self._timers.pop(key, None)
            if previous is not None:
                previous.cancel()
            self._timers[key] = timer
        timer.start()

    def _fire(self, key: str, callback: Callback) -> None:
        with self._lock:
            timer = self._timers.get(key)
            if timer is not threading.current_thread():
                # Replaced or cancelled after this timer started running
                return
            del self._timers[key]
        _run(key, callback)

    def cancel(self, key: str) -> bool:
        with self._lock:
            timer = self._timers.pop(key, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def pending(self) -> List[str]:
        with self._lock:
            return sorted(self._timers)


class ManualScheduler(Scheduler):
    """
    Deterministic scheduler for tests and simulations.

    Nothing runs until advance() or run_due() is called; due tasks then run
    in due-time order (ties in scheduling order) on the calling thread, with
    the clock set to each task's due time.
    """

    def __init__(self, clock: Optional[ManualClock] = None):
        self.clock = clock or ManualClock()
        self._tasks: Dict[str, Tuple[float, int, Callback]] = {}
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def schedule(self, key: str, delay: float, callback: Callback) -> None:
        due = self.clock.now() + max(delay, 0.0)
        with self._lock:
            self._tasks[key] = (due, next(self._counter), callback)

    def cancel(self, key: str) -> bool:
        with self._lock:
            return self._tasks.pop(key, None) is not None

    def pending(self) -> List[str]:
        with self._lock:
            return [key for key, _ in sorted(self._tasks.items(), key=lambda kv: kv[1][:2])]

    def _pop_due(self, until: float) -> Optional[Tuple[str, float, Callback]]:
        with self._lock:
            due = [(due, seq, key) for key, (due, seq, _) in self._tasks.items() if due <= until]
            if not due:
                return None
            due_time, _, key = heapq.nsmallest(1, due)[0]
            _, _, callback = self._tasks.pop(key)
            return key, due_time, callback

    def run_due(self) -> int:
        """Run every task due at the current time. Returns the number run."""
        return self.advance(0.0)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running tasks as they come due."""
        target = self.clock.now() + seconds
        ran = 0

        while True:
            task = self._pop_due(target)
            if task is None:
                break
            key, due_time, callback = task
            if due_time > self.clock.now():
                self.clock.set(due_time)
            _run(key, callback)
            ran += 1

        if target > self.clock.now():
            self.clock.set(target)
        return ran
