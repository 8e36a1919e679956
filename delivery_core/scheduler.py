# shirpur-delivery-core/delivery_core/scheduler.py
"""
Recurring timers for the simulation ticks.

Services never call time.sleep or create threads: they ask a Scheduler for
an interval job and keep the returned handle so they can cancel it.

- ManualScheduler: virtual clock advanced explicitly. Used by tests and by
  the command-line demo to run a deterministic number of ticks.
- AsyncioScheduler: call_later chains on one asyncio event loop, giving the
  cooperative single-threaded model (a callback never re-enters itself).
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class ScheduledJob:
    """Handle of a recurring job. cancel() is idempotent."""

    def __init__(self, interval: float, callback: Callback, name: str = "") -> None:
        self.interval = interval
        self.callback = callback
        self.name = name
        self.cancelled = False
        self.runs = 0

    def cancel(self) -> None:
        self.cancelled = True

    def _run(self) -> None:
        self.runs += 1
        try:
            self.callback()
        except Exception:
            logger.exception(f"Scheduled job {self.name or self.callback!r} failed")

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"ScheduledJob({self.name or '?'}, every {self.interval}s, {state})"


class Scheduler(ABC):
    @abstractmethod
    def schedule_interval(self, interval: float, callback: Callback, name: str = "") -> ScheduledJob:
        """Run callback every `interval` seconds, first run one interval from now."""


class ManualScheduler(Scheduler):
    """
    Deterministic scheduler driven by advance().

    Jobs due at the same instant fire in the order they were scheduled.
    """

    def __init__(self) -> None:
        self.now: float = 0.0
        self._queue: List[Tuple[float, int, ScheduledJob]] = []
        self._sequence = itertools.count()

    def schedule_interval(self, interval: float, callback: Callback, name: str = "") -> ScheduledJob:
        if interval <= 0:
            raise ValueError("interval must be positive")
        job = ScheduledJob(interval, callback, name)
        heapq.heappush(self._queue, (self.now + interval, next(self._sequence), job))
        return job

    @property
    def active_jobs(self) -> List[ScheduledJob]:
        return [job for _, _, job in sorted(self._queue) if not job.cancelled]

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward, firing every job that falls due.

        Returns:
            Number of callbacks executed
        """
        deadline = self.now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= deadline:
            due, _, job = heapq.heappop(self._queue)
            if job.cancelled:
                continue
            self.now = due
            job._run()
            fired += 1
            if not job.cancelled:
                heapq.heappush(self._queue, (due + job.interval, next(self._sequence), job))
        self.now = deadline
        return fired


class AsyncioScheduler(Scheduler):
    """Interval jobs on an asyncio loop. Must be used from the loop's thread."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule_interval(self, interval: float, callback: Callback, name: str = "") -> ScheduledJob:
        if interval <= 0:
            raise ValueError("interval must be positive")
        job = _AsyncioJob(interval, callback, name)
        job._arm(self.loop)
        return job


class _AsyncioJob(ScheduledJob):
    def __init__(self, interval: float, callback: Callback, name: str = "") -> None:
        super().__init__(interval, callback, name)
        self._handle: Optional[asyncio.TimerHandle] = None

    def _arm(self, loop: asyncio.AbstractEventLoop) -> None:
        self._handle = loop.call_later(self.interval, self._fire, loop)

    def _fire(self, loop: asyncio.AbstractEventLoop) -> None:
        if self.cancelled:
            return
        self._run()
        if not self.cancelled:
            self._arm(loop)

    def cancel(self) -> None:
        super().cancel()
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
