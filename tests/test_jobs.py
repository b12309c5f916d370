"""Tests for the supervised job runner and per-session locks."""

from __future__ import annotations

import threading
import time

import pytest

from talknotes.jobs import JobRunner, SessionLocks


class TestJobRunner:
    def test_runs_job_and_returns_result(self, runner: JobRunner) -> None:
        future = runner.submit("add", "s1", lambda a, b: a + b, 2, 3)
        assert future.result(timeout=5) == 5

    def test_failure_is_supervised(self, runner: JobRunner) -> None:
        errors: list[BaseException] = []

        def boom() -> None:
            raise ValueError("nope")

        future = runner.submit("boom", "s1", boom, on_error=errors.append)

        assert future.result(timeout=5) is None
        assert len(errors) == 1 and isinstance(errors[0], ValueError)

    def test_failing_error_handler_is_contained(self, runner: JobRunner) -> None:
        def bad_handler(exc: BaseException) -> None:
            raise RuntimeError("handler broke")

        future = runner.submit("boom", "s1", lambda: 1 / 0, on_error=bad_handler)
        assert future.result(timeout=5) is None

    def test_drain_waits_for_nested_jobs(self, runner: JobRunner) -> None:
        done: list[str] = []

        def child() -> None:
            time.sleep(0.05)
            done.append("child")

        def parent() -> None:
            runner.submit("child", "s1", child)
            done.append("parent")

        runner.submit("parent", "s1", parent)

        assert runner.drain(timeout=5)
        assert sorted(done) == ["child", "parent"]

    def test_drain_times_out(self, runner: JobRunner) -> None:
        release = threading.Event()
        runner.submit("wait", "s1", release.wait, 5)
        assert runner.drain(timeout=0.01) is False
        release.set()
        assert runner.drain(timeout=5)


class TestSessionLocks:
    def test_entry_dropped_after_release(self) -> None:
        locks = SessionLocks()
        with locks.hold("a"):
            assert len(locks) == 1
        assert len(locks) == 0

    def test_lock_is_reentrant(self) -> None:
        locks = SessionLocks()
        with locks.hold("a"):
            with locks.hold("a"):
                assert len(locks) == 1
            assert len(locks) == 1
        assert len(locks) == 0

    def test_released_on_error(self) -> None:
        locks = SessionLocks()
        with pytest.raises(RuntimeError):
            with locks.hold("a"):
                raise RuntimeError("boom")
        assert len(locks) == 0

    def test_serializes_work_per_session(self) -> None:
        locks = SessionLocks()
        active = 0
        peak = 0
        guard = threading.Lock()

        def work() -> None:
            nonlocal active, peak
            with locks.hold("s1"):
                with guard:
                    active += 1
                    peak = max(peak, active)
                time.sleep(0.01)
                with guard:
                    active -= 1

        threads = [threading.Thread(target=work) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert peak == 1
        assert len(locks) == 0

    def test_different_sessions_do_not_block(self) -> None:
        locks = SessionLocks()
        entered = threading.Event()

        def other() -> None:
            with locks.hold("b"):
                entered.set()

        with locks.hold("a"):
            thread = threading.Thread(target=other)
            thread.start()
            assert entered.wait(timeout=5)
            thread.join()
