"""
Fixed-size worker pool with explicit two-phase shutdown.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional

from nmt_common.errors import RunInterrupted, TaskFailure
from nmt_runner.stop_token import StopToken


logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 0.25


class WorkerPool:
    """Run submitted tasks on at most ``worker_count`` threads.

    A failing task aborts only itself. With ``fail_fast`` the first failure is
    re-raised from ``await_completion``; otherwise it is logged, recorded and
    the wait continues.
    """

    def __init__(
        self,
        worker_count: int,
        *,
        fail_fast: bool = True,
        thread_name_prefix: str = "nmt-worker",
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        if worker_count <= 0:
            raise ValueError("worker_count must be positive")
        self.worker_count = worker_count
        self.fail_fast = fail_fast
        self._poll_interval = poll_interval
        self._executor = ThreadPoolExecutor(
            max_workers=worker_count, thread_name_prefix=thread_name_prefix
        )
        self._futures: Dict[Future, int] = {}
        self._failures: List[TaskFailure] = []
        self._closed = False
        self._cancel_event = threading.Event()
        self._lock = threading.Lock()

    @property
    def submitted_count(self) -> int:
        return len(self._futures)

    def submit(self, task: Callable[[], Any]) -> Future:
        """Queue a task; ordering among tasks is not guaranteed."""
        with self._lock:
            if self._closed:
                raise RuntimeError("Worker pool is closed for submission")
            index = len(self._futures)
            future = self._executor.submit(self._run_task, task, index)
            self._futures[future] = index
        return future

    def close_for_submission(self) -> None:
        """Stop accepting tasks; already submitted tasks keep running."""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=False)

    def await_completion(
        self,
        timeout: float,
        stop_token: Optional[StopToken] = None,
    ) -> bool:
        """
        Block until every submitted task finished or the timeout elapsed.

        Args:
            timeout: Upper bound in seconds
            stop_token: Polled between waits and once more before returning;
                a tripped token raises RunInterrupted

        Returns:
            True when all tasks finished, False on timeout.
        """
        deadline = time.monotonic() + timeout
        pending = set(self._futures)
        while pending:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            done, pending = wait(
                pending,
                timeout=min(self._poll_interval, remaining),
                return_when=FIRST_EXCEPTION,
            )
            for future in done:
                if future.cancelled():
                    continue
                error = future.exception()
                if error is not None:
                    raise error
            if pending:
                self._check_stop(stop_token, len(pending))
        # A stop landing in the last slice still counts as an interruption.
        self._check_stop(stop_token, 0)
        return True

    def force_cancel_remaining(self) -> int:
        """Discard queued tasks and flag running ones; returns how many were discarded.

        Tasks already running are not interrupted; they may still finish.
        """
        self._cancel_event.set()
        with self._lock:
            self._closed = True
            futures = list(self._futures)
        cancelled = sum(1 for future in futures if future.cancel())
        self._executor.shutdown(wait=False, cancel_futures=True)
        in_flight = sum(1 for future in futures if future.running())
        logger.warning(
            "Cancelled %d queued task(s); %d task(s) still in flight", cancelled, in_flight
        )
        return cancelled

    def failures(self) -> list[TaskFailure]:
        with self._lock:
            return list(self._failures)

    def _check_stop(self, stop_token: Optional[StopToken], pending: int) -> None:
        if stop_token is not None and stop_token.should_stop():
            raise RunInterrupted(
                "Interrupted while waiting for workers",
                signum=stop_token.signum,
                context={"pending": pending},
            )

    def _run_task(self, task: Callable[[], Any], index: int) -> Any:
        if self._cancel_event.is_set():
            return None
        try:
            return task()
        except Exception as exc:
            if isinstance(exc, TaskFailure):
                failure = exc
            else:
                failure = TaskFailure(
                    f"Task {index} failed: {exc}",
                    task_index=index,
                    context={"thread": threading.current_thread().name},
                    cause=exc,
                )
            with self._lock:
                self._failures.append(failure)
            if self.fail_fast:
                if failure is exc:
                    raise
                raise failure from exc
            logger.error("Task %d failed; continuing: %s", index, exc, exc_info=exc)
            return None
