"""Tests for WorkerPool dispatch, failure policy and shutdown."""

from __future__ import annotations

import threading
import time

import pytest

from nmt_common.errors import RunInterrupted, TaskFailure
from nmt_runner.engine.worker_pool import WorkerPool
from nmt_runner.stop_token import StopToken


pytestmark = [pytest.mark.unit, pytest.mark.unit_runner]


def test_runs_every_task_with_bounded_concurrency() -> None:
    lock = threading.Lock()
    active = 0
    peak = 0
    done = []

    def task() -> None:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with lock:
            active -= 1
            done.append(threading.current_thread().name)

    pool = WorkerPool(2, poll_interval=0.01)
    for _ in range(8):
        pool.submit(task)
    pool.close_for_submission()

    assert pool.await_completion(5.0) is True
    assert len(done) == 8
    assert peak <= 2
    assert all(name.startswith("nmt-worker") for name in done)


def test_submit_after_close_is_rejected() -> None:
    pool = WorkerPool(1)
    pool.close_for_submission()
    with pytest.raises(RuntimeError):
        pool.submit(lambda: None)


def test_fail_fast_propagates_task_failure() -> None:
    ran = []

    def ok() -> None:
        ran.append(1)

    def broken() -> None:
        raise ValueError("decoder exploded")

    pool = WorkerPool(1, poll_interval=0.01)
    pool.submit(ok)
    pool.submit(broken)
    pool.submit(ok)
    pool.close_for_submission()

    with pytest.raises(TaskFailure) as excinfo:
        pool.await_completion(5.0)

    assert excinfo.value.task_index == 1
    assert isinstance(excinfo.value.__cause__, ValueError)
    assert len(pool.failures()) == 1
    assert ran


def test_keep_going_records_failures_and_completes() -> None:
    ran = []

    def ok() -> None:
        ran.append(1)

    def broken() -> None:
        raise RuntimeError("bad frame")

    pool = WorkerPool(2, fail_fast=False, poll_interval=0.01)
    for task in (ok, broken, ok, broken, ok):
        pool.submit(task)
    pool.close_for_submission()

    assert pool.await_completion(5.0) is True
    assert len(ran) == 3
    assert sorted(f.task_index for f in pool.failures()) == [1, 3]


def test_timeout_then_force_cancel_discards_queued_tasks() -> None:
    release = threading.Event()
    started = []

    def blocking() -> None:
        started.append(1)
        release.wait(5.0)

    pool = WorkerPool(1, poll_interval=0.01)
    for _ in range(4):
        pool.submit(blocking)
    pool.close_for_submission()
    try:
        assert pool.await_completion(0.1) is False
        cancelled = pool.force_cancel_remaining()
        assert cancelled == 3
    finally:
        release.set()
    assert len(started) == 1


def test_tripped_stop_token_interrupts_wait() -> None:
    release = threading.Event()
    token = StopToken(enable_signals=False)
    token.signum = 15
    pool = WorkerPool(1, poll_interval=0.01)
    pool.submit(lambda: release.wait(5.0))
    pool.close_for_submission()

    timer = threading.Timer(0.05, token.request_stop)
    timer.start()
    try:
        with pytest.raises(RunInterrupted) as excinfo:
            pool.await_completion(5.0, stop_token=token)
        assert excinfo.value.signum == 15
    finally:
        timer.cancel()
        release.set()


def test_rejects_non_positive_worker_count() -> None:
    with pytest.raises(ValueError):
        WorkerPool(0)


def test_stop_requested_by_last_task_is_not_lost() -> None:
    token = StopToken(enable_signals=False)
    pool = WorkerPool(1, poll_interval=0.01)
    pool.submit(token.request_stop)
    pool.close_for_submission()

    with pytest.raises(RunInterrupted) as excinfo:
        pool.await_completion(5.0, stop_token=token)

    assert excinfo.value.context["pending"] == 0


def test_untripped_token_lets_wait_finish() -> None:
    token = StopToken(enable_signals=False)
    pool = WorkerPool(2, poll_interval=0.01)
    for _ in range(3):
        pool.submit(lambda: None)
    pool.close_for_submission()

    assert pool.await_completion(5.0, stop_token=token) is True
