# src/worldlog/core/scheduling.py
"""Deferred task scheduling.

The purge queue never sleeps or blocks a caller-facing thread. It only
needs two capabilities, captured by the DeferredScheduler protocol:

- run_async(task): run a task on a background worker as soon as possible
- schedule(delay_seconds, task): run a task on a background worker later

Implementations:
- ThreadPoolScheduler: ThreadPoolExecutor workers, threading.Timer delays (production)
- ManualScheduler: single-threaded, clock-driven, stepped explicitly (testing)
"""

from __future__ import annotations

import heapq
import itertools
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Protocol

import structlog

from worldlog.core.clock import Clock, MockClock

logger = structlog.get_logger(__name__)

Task = Callable[[], None]


class DeferredScheduler(Protocol):
    """Narrow deferred-task capability consumed by PurgeQueue."""

    def run_async(self, task: Task) -> None:
        """Run task on a background worker without waiting for it."""
        ...

    def schedule(self, delay_seconds: float, task: Task) -> None:
        """Run task on a background worker after delay_seconds."""
        ...

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks and release workers."""
        ...


class ThreadPoolScheduler:
    """DeferredScheduler backed by a thread pool.

    Delays are non-blocking: a threading.Timer hands the task to the pool
    when it becomes due, so no worker sleeps while waiting.

    Task exceptions are logged here and never re-raised into the thread
    that submitted the task. The owning integration observes failures
    through its own callbacks.

    Thread Safety:
        run_async, schedule and shutdown are safe to call from any thread.
    """

    def __init__(self, max_workers: int = 1, name: str = "worldlog") -> None:
        """Initialize the scheduler.

        Args:
            max_workers: Worker threads. One is enough for a single purge chain.
            name: Thread name prefix for workers and timers.
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._name = name
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._timers: set[threading.Timer] = set()
        self._shutdown = False

    def run_async(self, task: Task) -> None:
        with self._lock:
            if self._shutdown:
                logger.warning("Scheduler is shut down, dropping task", scheduler=self._name)
                return
            future = self._executor.submit(task)
        future.add_done_callback(self._log_failure)

    def schedule(self, delay_seconds: float, task: Task) -> None:
        if delay_seconds <= 0:
            self.run_async(task)
            return

        def _fire() -> None:
            with self._lock:
                self._timers.discard(timer)
            self.run_async(task)

        timer = threading.Timer(delay_seconds, _fire)
        timer.name = f"{self._name}-timer"
        timer.daemon = True
        with self._lock:
            if self._shutdown:
                logger.warning("Scheduler is shut down, dropping delayed task", scheduler=self._name)
                return
            self._timers.add(timer)
        timer.start()

    def shutdown(self, wait: bool = True) -> None:
        """Cancel pending timers and stop the worker pool.

        Args:
            wait: Block until tasks already running on workers finish.
        """
        with self._lock:
            self._shutdown = True
            timers = list(self._timers)
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self) -> ThreadPoolScheduler:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.shutdown(wait=True)

    def _log_failure(self, future: Future[None]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Scheduled task failed",
                scheduler=self._name,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=exc,
            )


class ManualScheduler:
    """Deterministic DeferredScheduler for tests and synchronous tools.

    Nothing runs until the owner steps the scheduler. Tasks become due at
    clock.monotonic() + delay and run in due-time order, FIFO among equal
    due times. Tasks scheduled by a running task are picked up in the same
    step if they are already due.

    Unlike ThreadPoolScheduler, task exceptions propagate to the caller of
    run_pending()/advance()/run_until_idle() so tests see them directly.

    Example:
        clock = MockClock()
        scheduler = ManualScheduler(clock)
        queue = PurgeQueue(store, settings, scheduler, on_cycle=..., on_end=...)
        queue.add(query)
        queue.start()
        scheduler.run_pending()  # bounds lookup + first cycle
        scheduler.advance(2.0)   # second cycle
    """

    def __init__(self, clock: MockClock | None = None) -> None:
        self.clock: MockClock = clock if clock is not None else MockClock()
        self._queue: list[tuple[float, int, Task]] = []
        self._sequence = itertools.count()
        self._shutdown = False
        self.delays: list[float] = []

    @property
    def pending_count(self) -> int:
        """Tasks waiting to run (due or not)."""
        return len(self._queue)

    def next_due(self) -> float | None:
        """Due time of the earliest queued task, or None when idle."""
        return self._queue[0][0] if self._queue else None

    def run_async(self, task: Task) -> None:
        self._push(0.0, task)

    def schedule(self, delay_seconds: float, task: Task) -> None:
        self.delays.append(delay_seconds)
        self._push(max(delay_seconds, 0.0), task)

    def shutdown(self, wait: bool = True) -> None:
        self._shutdown = True
        self._queue.clear()

    def run_pending(self) -> int:
        """Run every task that is due now.

        Returns:
            Number of tasks run.
        """
        ran = 0
        while self._queue and self._queue[0][0] <= self.clock.monotonic():
            _, _, task = heapq.heappop(self._queue)
            ran += 1
            task()
        return ran

    def advance(self, seconds: float) -> int:
        """Advance the clock, then run whatever became due."""
        self.clock.advance(seconds)
        return self.run_pending()

    def run_until_idle(self, max_tasks: int = 10_000) -> int:
        """Jump the clock from due time to due time until no task remains.

        Raises:
            RuntimeError: If more than max_tasks run (a chain that never ends).
        """
        ran = 0
        while self._queue:
            due = self._queue[0][0]
            if due > self.clock.monotonic():
                self.clock.set(due)
            ran += self.run_pending()
            if ran > max_tasks:
                raise RuntimeError(f"Scheduler still busy after {max_tasks} tasks")
        return ran

    def _push(self, delay_seconds: float, task: Task) -> None:
        if self._shutdown:
            return
        heapq.heappush(self._queue, (self.clock.monotonic() + delay_seconds, next(self._sequence), task))
