# src/worldlog/purge/queue.py
"""Purge queue: deletes old activities in bounded, delay-spaced cycles.

A purge run drains a FIFO of ActivityQuery objects. For the query at the
front of the queue, the absolute primary key bounds are looked up once when
it becomes active. Each cycle then deletes one window of at most `limit`
keys and schedules the next cycle after the configured delay, so a single
purge request never holds the store for long.

State machine:
    Idle --start()--> Running --queue drained--> Idle (on_end fires)
                      Running --stop()--------> Idle (on_end never fires)
                      Running --store fault---> Idle (fault logged and re-raised)

Cycles are chained, never concurrent: each cycle schedules its successor
only after its own delete returned. stop() is cooperative and takes effect
at the start of the next cycle.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable
from typing import Protocol

import structlog

from worldlog.contracts import CycleBounds, PurgeCycleResult, PurgeQueueError, PurgeResult
from worldlog.core.config import PurgeSettings
from worldlog.core.scheduling import DeferredScheduler
from worldlog.storage.query import ActivityQuery

logger = structlog.get_logger(__name__)

# Used when purges.cycle_delay is unset or malformed
DEFAULT_CYCLE_DELAY_SECONDS = 2.0


class PurgeStore(Protocol):
    """Store operations consumed by PurgeQueue (implemented by ActivityStore)."""

    def get_activities_pk_bounds(self, query: ActivityQuery) -> tuple[int, int] | None: ...

    def delete_activities(self, query: ActivityQuery, min_primary_key: int, max_primary_key: int) -> int: ...


class PurgeQueue:
    """Ordered purge queries plus the cycle loop that drains them.

    Callbacks run on the scheduler's worker, never on the thread that
    called start().

    Thread Safety:
        add(), start(), stop() and the status properties are safe from any
        thread. _lock guards pending, running and the deleted counter.
    """

    def __init__(
        self,
        store: PurgeStore,
        settings: PurgeSettings,
        scheduler: DeferredScheduler,
        *,
        on_cycle: Callable[[PurgeCycleResult], None],
        on_end: Callable[[PurgeResult], None],
    ) -> None:
        """Initialize the purge queue.

        Args:
            store: Activity store providing bounds lookup and window deletes
            settings: Batch limit and cycle delay
            scheduler: Deferred task runner for cycles
            on_cycle: Called after every cycle with its count and window
            on_end: Called once when the queue drains naturally
        """
        self._store = store
        self._settings = settings
        self._scheduler = scheduler
        self._on_cycle = on_cycle
        self._on_end = on_end

        self._lock = threading.Lock()
        self._pending: deque[ActivityQuery] = deque()
        self._running = False
        self._deleted = 0
        # Incremented by start(); cycles of an earlier run see a stale id and exit
        self._run_id = 0

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def deleted(self) -> int:
        """Total rows deleted by completed cycles so far."""
        with self._lock:
            return self._deleted

    @property
    def pending(self) -> tuple[ActivityQuery, ...]:
        """Snapshot of queued queries, front first."""
        with self._lock:
            return tuple(self._pending)

    def add(self, query: ActivityQuery) -> None:
        """Append a query. Legal in any state, including while running."""
        with self._lock:
            self._pending.append(query)

    def start(self) -> None:
        """Start draining the queue on the scheduler.

        Bounds for the first query are computed on the worker, not here.

        Raises:
            PurgeQueueError: If the queue is empty or already running
        """
        with self._lock:
            if self._running:
                raise PurgeQueueError("Purge queue is already running")
            if not self._pending:
                raise PurgeQueueError("Cannot start an empty purge queue")
            self._running = True
            self._run_id += 1
            run_id = self._run_id

        self._scheduler.run_async(lambda: self._activate_next_query(run_id))

    def stop(self) -> None:
        """Stop after the in-flight cycle, if any.

        Pending queries and the deleted count are kept, so start() resumes.
        The front query restarts from fresh bounds, which only covers rows
        that still match.
        """
        with self._lock:
            self._running = False

    def _cycle_delay_seconds(self) -> float:
        cycle_delay = self._settings.cycle_delay
        if cycle_delay is None:
            return DEFAULT_CYCLE_DELAY_SECONDS
        return cycle_delay.to_seconds(DEFAULT_CYCLE_DELAY_SECONDS)

    def _front(self) -> ActivityQuery | None:
        with self._lock:
            return self._pending[0] if self._pending else None

    def _pop_front(self, query: ActivityQuery) -> None:
        with self._lock:
            # Only the cycle chain pops, and add() only appends, so the front is still query
            if self._pending and self._pending[0] is query:
                self._pending.popleft()

    def _finish_if_drained(self, run_id: int) -> bool:
        """Handle the stopped and drained cases at the top of a cycle.

        Returns:
            True when the loop must not continue
        """
        with self._lock:
            if not self._running or run_id != self._run_id:
                return True
            if self._pending:
                return False
            self._running = False
            deleted = self._deleted

        logger.info("Purge queue now empty, finishing", deleted=deleted)
        self._on_end(PurgeResult(deleted=deleted))
        return True

    def _fail(self, run_id: int, error: Exception, query: ActivityQuery, **context: int) -> None:
        with self._lock:
            if run_id == self._run_id:
                self._running = False
        logger.error(
            "Purge stopped on failure",
            query=str(query),
            error=str(error),
            error_type=type(error).__name__,
            **context,
        )

    def _activate_next_query(self, run_id: int) -> None:
        """Look up absolute bounds for the front query, then run its first cycle."""
        if self._finish_if_drained(run_id):
            return

        query = self._front()
        if query is None:
            return

        try:
            bounds = self._store.get_activities_pk_bounds(query)
        except Exception as e:
            self._fail(run_id, e, query)
            raise

        if bounds is None:
            logger.info("No activities match purge query, skipping", query=str(query))
            self._pop_front(query)
            self._scheduler.run_async(lambda: self._activate_next_query(run_id))
            return

        min_primary_key, max_primary_key = bounds
        logger.debug(
            "Absolute purge lower/upper bound primary keys",
            query=str(query),
            min_primary_key=min_primary_key,
            max_primary_key=max_primary_key,
        )
        self._execute_next(run_id, min_primary_key, max_primary_key)

    def _execute_next(self, run_id: int, cycle_min_primary_key: int, max_primary_key: int) -> None:
        """Run one cycle for the front query and schedule the next."""
        if self._finish_if_drained(run_id):
            return

        delay_seconds = self._cycle_delay_seconds()
        limit = self._settings.limit

        query = self._front()
        if query is None:
            return
        logger.info("Executing next purge cycle", query=str(query))

        bounds = CycleBounds.for_cycle(cycle_min_primary_key, max_primary_key, limit)
        logger.debug(
            "Limiting cycle to primary keys",
            min_primary_key=bounds.cycle_min,
            max_primary_key=bounds.cycle_max,
        )

        try:
            count = self._store.delete_activities(query, bounds.cycle_min, bounds.cycle_max)
        except Exception as e:
            self._fail(run_id, e, query, min_primary_key=bounds.cycle_min, max_primary_key=bounds.cycle_max)
            raise

        with self._lock:
            self._deleted += count

        try:
            self._on_cycle(
                PurgeCycleResult(
                    deleted=count,
                    min_primary_key=bounds.cycle_min,
                    max_primary_key=bounds.cycle_max,
                )
            )
        except Exception as e:
            self._fail(run_id, e, query, min_primary_key=bounds.cycle_min, max_primary_key=bounds.cycle_max)
            raise
        logger.info("Purged activity records", count=count)

        next_cycle_min_primary_key = cycle_min_primary_key + limit

        if next_cycle_min_primary_key >= max_primary_key:
            # This query's range is exhausted; the next query gets fresh bounds
            self._pop_front(query)
            logger.info("Scheduling next purge query", delay_seconds=delay_seconds)
            self._scheduler.schedule(delay_seconds, lambda: self._activate_next_query(run_id))
            return

        logger.info("Scheduling next cycle", delay_seconds=delay_seconds)
        self._scheduler.schedule(
            delay_seconds,
            lambda: self._execute_next(run_id, next_cycle_min_primary_key, max_primary_key),
        )
