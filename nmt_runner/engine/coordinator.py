"""
Run orchestration: baseline snapshot, worker pool, periodic sampler and the
final snapshot.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, List, Optional

from nmt_common.errors import RunInterrupted, TaskFailure
from nmt_runner.engine.guard import FinalSnapshotGuard
from nmt_runner.engine.progress import ProgressCounter, ProgressReporter
from nmt_runner.engine.sampler import PeriodicSampler
from nmt_runner.engine.worker_pool import WorkerPool
from nmt_runner.models.config import RunConfig
from nmt_runner.models.types import (
    BASELINE_TAG,
    FINAL_TAG,
    PERIODIC_TAG,
    RunOutcome,
    SnapshotResult,
    TerminationReason,
)
from nmt_runner.services.snapshot import SnapshotCapturer
from nmt_runner.stop_token import StopToken


logger = logging.getLogger(__name__)

PoolFactory = Callable[[RunConfig], WorkerPool]
SamplerFactory = Callable[[Callable[[], Any], RunConfig], PeriodicSampler]


def default_pool_factory(config: RunConfig) -> WorkerPool:
    return WorkerPool(config.worker_count, fail_fast=config.fail_fast)


def default_sampler_factory(capture: Callable[[], Any], config: RunConfig) -> PeriodicSampler:
    return PeriodicSampler(capture, grace_seconds=config.sampler_grace_seconds)


class Coordinator:
    """Drive one harness run.

    Order of operations:
      1. baseline snapshot (before any worker thread exists)
      2. periodic sampler, when enabled
      3. submit ``invocation_count`` tasks, close the pool, wait with a bound
      4. exactly one of normal completion, timeout, interruption, task failure
      5. stop the sampler, then the final snapshot through the one-shot guard

    Interruptions and task failures are re-raised after step 5.
    """

    def __init__(
        self,
        config: RunConfig,
        work: Callable[[], Any],
        *,
        capturer: Optional[SnapshotCapturer] = None,
        stop_token: Optional[StopToken] = None,
        reporter: Optional[ProgressReporter] = None,
        pool_factory: PoolFactory = default_pool_factory,
        sampler_factory: SamplerFactory = default_sampler_factory,
    ) -> None:
        self.config = config
        self.counter = ProgressCounter()
        self.final_guard = FinalSnapshotGuard()
        self.outcome: Optional[RunOutcome] = None
        self._work = work
        self._capturer = capturer or SnapshotCapturer.from_config(config)
        self._stop_token = stop_token
        self._reporter = reporter or ProgressReporter()
        self._pool_factory = pool_factory
        self._sampler_factory = sampler_factory
        self._pool: Optional[WorkerPool] = None
        self._sampler: Optional[PeriodicSampler] = None
        self._snapshots: List[SnapshotResult] = []
        self._snapshots_lock = threading.Lock()
        self._started_at: Optional[float] = None

    @property
    def snapshots(self) -> list[SnapshotResult]:
        with self._snapshots_lock:
            return list(self._snapshots)

    def run(self) -> RunOutcome:
        """Execute the run and return its outcome.

        Raises:
            RunInterrupted / KeyboardInterrupt: re-raised after cleanup
            TaskFailure: re-raised after cleanup when ``fail_fast`` is set
        """
        self._started_at = time.monotonic()
        self._record(
            self._capturer.capture_tagged(BASELINE_TAG, "Baseline (before thread start)")
        )
        pool = self._pool_factory(self.config)
        self._pool = pool
        self._start_sampler()

        reason = TerminationReason.INTERRUPTED
        try:
            try:
                for _ in range(self.config.invocation_count):
                    pool.submit(self._execute_task)
                pool.close_for_submission()
                finished = pool.await_completion(
                    self.config.completion_timeout_seconds,
                    stop_token=self._stop_token,
                )
            except (RunInterrupted, KeyboardInterrupt):
                reason = TerminationReason.INTERRUPTED
                logger.error("Interrupted while waiting for workers to finish")
                pool.force_cancel_remaining()
                raise
            except TaskFailure as exc:
                reason = TerminationReason.TASK_FAILURE
                logger.error("Task %s failed; cancelling remaining tasks", exc.task_index)
                pool.force_cancel_remaining()
                raise
            except Exception:
                reason = TerminationReason.TASK_FAILURE
                logger.exception("Unexpected failure while running workers")
                pool.force_cancel_remaining()
                raise

            if finished:
                reason = TerminationReason.NORMAL_COMPLETION
                logger.info("All tasks completed: %d", self.counter.current_value())
            else:
                reason = TerminationReason.TIMEOUT
                logger.error(
                    "Timeout after %.0fs while waiting for tasks to complete",
                    self.config.completion_timeout_seconds,
                )
                pool.force_cancel_remaining()
        finally:
            self.shutdown(reason)
            self.outcome = self._build_outcome(reason)
            self._reporter.summary(self.outcome, self.config.canonical_input_path)
        return self.outcome

    def shutdown(self, reason: TerminationReason) -> Optional[SnapshotResult]:
        """Stop the sampler, then attempt the final snapshot. Safe to repeat."""
        if self._sampler is not None:
            self._sampler.stop()
        return self.capture_final(reason)

    def capture_final(self, reason: TerminationReason) -> Optional[SnapshotResult]:
        """Capture the final snapshot unless another exit path already did."""
        if not self.final_guard.claim():
            logger.debug("Final snapshot already captured; ignoring %s", reason.value)
            return None
        result = self._capturer.capture_tagged(FINAL_TAG, reason.final_description)
        self._record(result)
        return result

    def _start_sampler(self) -> None:
        if not self.config.sampling_enabled:
            return
        self._sampler = self._sampler_factory(self._capture_periodic, self.config)
        self._sampler.start(self.config.sample_interval_seconds)

    def _capture_periodic(self) -> SnapshotResult:
        result = self._capturer.capture_tagged(PERIODIC_TAG, "Periodic dump")
        self._record(result)
        return result

    def _execute_task(self) -> None:
        self._work()
        count = self.counter.increment_and_get()
        self._reporter.task_completed(count, threading.current_thread().name)

    def _record(self, result: SnapshotResult) -> None:
        with self._snapshots_lock:
            self._snapshots.append(result)

    def _build_outcome(self, reason: TerminationReason) -> RunOutcome:
        elapsed = time.monotonic() - self._started_at if self._started_at else 0.0
        failed = len(self._pool.failures()) if self._pool is not None else 0
        return RunOutcome(
            reason=reason,
            completed=self.counter.current_value(),
            submitted=self._pool.submitted_count if self._pool is not None else 0,
            failed=failed,
            elapsed_seconds=elapsed,
            snapshots=self.snapshots,
            periodic_captures=self._sampler.capture_count if self._sampler is not None else 0,
            sampler_abandoned=self._sampler.abandoned if self._sampler is not None else False,
        )
