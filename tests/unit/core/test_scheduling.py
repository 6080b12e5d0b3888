"""Tests for deferred task schedulers."""

from __future__ import annotations

import threading

import pytest

from worldlog.core.clock import MockClock
from worldlog.core.scheduling import ManualScheduler, ThreadPoolScheduler


class TestManualScheduler:
    def test_nothing_runs_until_stepped(self) -> None:
        scheduler = ManualScheduler()
        ran: list[str] = []

        scheduler.run_async(lambda: ran.append("a"))

        assert ran == []
        assert scheduler.pending_count == 1
        assert scheduler.run_pending() == 1
        assert ran == ["a"]

    def test_delayed_task_waits_for_clock(self) -> None:
        clock = MockClock(start=100.0)
        scheduler = ManualScheduler(clock)
        ran: list[str] = []

        scheduler.schedule(5.0, lambda: ran.append("later"))

        assert scheduler.next_due() == 105.0
        assert scheduler.advance(4.0) == 0
        assert scheduler.advance(1.0) == 1
        assert ran == ["later"]
        assert scheduler.delays == [5.0]

    def test_due_order_then_fifo(self) -> None:
        scheduler = ManualScheduler()
        ran: list[str] = []

        scheduler.schedule(2.0, lambda: ran.append("second"))
        scheduler.schedule(1.0, lambda: ran.append("first-a"))
        scheduler.schedule(1.0, lambda: ran.append("first-b"))
        scheduler.run_until_idle()

        assert ran == ["first-a", "first-b", "second"]

    def test_tasks_scheduled_by_tasks_run_in_same_step_when_due(self) -> None:
        scheduler = ManualScheduler()
        ran: list[str] = []

        def parent() -> None:
            ran.append("parent")
            scheduler.run_async(lambda: ran.append("child"))

        scheduler.run_async(parent)

        assert scheduler.run_pending() == 2
        assert ran == ["parent", "child"]

    def test_run_until_idle_advances_clock(self) -> None:
        scheduler = ManualScheduler()
        scheduler.schedule(30.0, lambda: None)

        scheduler.run_until_idle()

        assert scheduler.clock.monotonic() == 30.0
        assert scheduler.next_due() is None

    def test_run_until_idle_detects_endless_chain(self) -> None:
        scheduler = ManualScheduler()

        def again() -> None:
            scheduler.schedule(1.0, again)

        scheduler.run_async(again)

        with pytest.raises(RuntimeError, match="still busy"):
            scheduler.run_until_idle(max_tasks=50)

    def test_task_exception_propagates(self) -> None:
        scheduler = ManualScheduler()

        def boom() -> None:
            raise ValueError("boom")

        scheduler.run_async(boom)

        with pytest.raises(ValueError, match="boom"):
            scheduler.run_pending()

    def test_shutdown_drops_pending_and_new_tasks(self) -> None:
        scheduler = ManualScheduler()
        ran: list[str] = []
        scheduler.run_async(lambda: ran.append("a"))

        scheduler.shutdown()
        scheduler.run_async(lambda: ran.append("b"))

        assert scheduler.run_until_idle() == 0
        assert ran == []


class TestThreadPoolScheduler:
    def test_run_async_runs_on_worker_thread(self) -> None:
        done = threading.Event()
        thread_names: list[str] = []

        def task() -> None:
            thread_names.append(threading.current_thread().name)
            done.set()

        with ThreadPoolScheduler(name="test-sched") as scheduler:
            scheduler.run_async(task)
            assert done.wait(timeout=5.0)

        assert thread_names[0].startswith("test-sched")
        assert thread_names[0] != threading.current_thread().name

    def test_schedule_runs_after_delay(self) -> None:
        done = threading.Event()

        with ThreadPoolScheduler() as scheduler:
            scheduler.schedule(0.05, done.set)
            assert done.wait(timeout=5.0)

    def test_zero_delay_runs_immediately(self) -> None:
        done = threading.Event()

        with ThreadPoolScheduler() as scheduler:
            scheduler.schedule(0, done.set)
            assert done.wait(timeout=5.0)

    def test_failing_task_does_not_stop_worker(self) -> None:
        done = threading.Event()

        def boom() -> None:
            raise RuntimeError("boom")

        with ThreadPoolScheduler() as scheduler:
            scheduler.run_async(boom)
            scheduler.run_async(done.set)
            assert done.wait(timeout=5.0)

    def test_shutdown_cancels_pending_timers(self) -> None:
        fired = threading.Event()
        scheduler = ThreadPoolScheduler()
        scheduler.schedule(0.5, fired.set)

        scheduler.shutdown(wait=True)

        assert not fired.wait(timeout=1.0)

    def test_tasks_after_shutdown_are_dropped(self) -> None:
        fired = threading.Event()
        scheduler = ThreadPoolScheduler()
        scheduler.shutdown()

        scheduler.run_async(fired.set)
        scheduler.schedule(0.01, fired.set)

        assert not fired.wait(timeout=0.2)

    def test_rejects_zero_workers(self) -> None:
        with pytest.raises(ValueError, match="max_workers"):
            ThreadPoolScheduler(max_workers=0)
