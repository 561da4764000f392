"""
scheduling.py - Clocks, one-shot scheduling and self-rescheduling tasks

Every timed behaviour in the engine (session tick, tempo sampling, pose
detection loop, motion grace period and fallback generator) goes through a
clock and a scheduler injected at construction time. Production code uses
SystemClock + ThreadScheduler; tests drive ManualClock + ManualScheduler so
debounce and pause accounting never depend on wall-clock sleeps.
"""

import heapq
import itertools
import logging
import threading
import time
from datetime import datetime
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class SystemClock:
    """Wall clock in milliseconds"""

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def now(self) -> datetime:
        return datetime.now()


class ManualClock:
    """Clock that only moves when told to"""

    def __init__(self, start_ms: int = 0):
        self._now_ms = start_ms

    def now_ms(self) -> int:
        return self._now_ms

    def now(self) -> datetime:
        return datetime.fromtimestamp(self._now_ms / 1000)

    def advance(self, ms: int) -> None:
        self._now_ms += ms

    def set(self, ms: int) -> None:
        self._now_ms = ms


class ScheduledCall:
    """Handle for a pending one-shot call"""

    def __init__(self, cancel_fn: Optional[Callable[[], None]] = None):
        self._cancel_fn = cancel_fn
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self._cancel_fn:
            self._cancel_fn()


class ThreadScheduler:
    """Runs callbacks on daemon threading.Timer threads"""

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ScheduledCall:
        timer = threading.Timer(delay_ms / 1000.0, callback)
        timer.daemon = True
        handle = ScheduledCall(timer.cancel)
        timer.start()
        return handle


class ManualScheduler:
    """
    Deterministic scheduler bound to a ManualClock.

    advance(ms) moves the clock forward and fires every call that becomes
    due, in due-time order, setting the clock to each call's due time first.
    """

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self._queue: List[Tuple[int, int, ScheduledCall, Callable[[], None]]] = []
        self._counter = itertools.count()

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ScheduledCall:
        handle = ScheduledCall()
        due = self.clock.now_ms() + max(0, int(delay_ms))
        heapq.heappush(self._queue, (due, next(self._counter), handle, callback))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def advance(self, ms: int) -> None:
        target = self.clock.now_ms() + ms
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.clock.set(due)
            callback()
        self.clock.set(target)


class RepeatingTask:
    """
    A task that reschedules itself only while is_active holds.

    stop() clears the flag and cancels the pending call; a run already in
    flight finishes but does not reschedule.
    """

    def __init__(self, scheduler, interval_ms: int, action: Callable[[], None], name: str = "task"):
        self._scheduler = scheduler
        self.interval_ms = interval_ms
        self._action = action
        self.name = name
        self._active = False
        self._generation = 0
        self._handle: Optional[ScheduledCall] = None
        self._lock = threading.Lock()

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self) -> None:
        with self._lock:
            if self._active:
                return
            self._active = True
            self._generation += 1
            self._schedule_next(self._generation)

    def stop(self) -> None:
        with self._lock:
            self._active = False
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None

    def _schedule_next(self, generation: int) -> None:
        self._handle = self._scheduler.call_later(self.interval_ms, lambda: self._run(generation))

    def _run(self, generation: int) -> None:
        # A stop()/start() pair while a run is in flight starts a new
        # generation; the stale run must not reschedule itself.
        if not self._active or generation != self._generation:
            return
        try:
            self._action()
        except Exception:
            logger.exception(f"❌ Repeating task '{self.name}' failed")
        finally:
            with self._lock:
                if self._active and generation == self._generation:
                    self._schedule_next(generation)
