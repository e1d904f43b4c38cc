"""Stable runner API surface."""

from nmt_runner.engine.coordinator import Coordinator
from nmt_runner.engine.guard import FinalSnapshotGuard
from nmt_runner.engine.progress import ProgressCounter, ProgressReporter
from nmt_runner.engine.sampler import PeriodicSampler, SamplerState
from nmt_runner.engine.worker_pool import WorkerPool
from nmt_runner.models.config import RunConfig
from nmt_runner.models.types import (
    BASELINE_TAG,
    FINAL_TAG,
    PERIODIC_TAG,
    RunOutcome,
    SnapshotRequest,
    SnapshotResult,
    TerminationReason,
)
from nmt_runner.services.snapshot import SnapshotCapturer, TimestampSource
from nmt_runner.stop_token import StopToken
from nmt_runner.workload.thumbnail import MediaFileInfo, ThumbnailWork

__all__ = [
    "BASELINE_TAG",
    "Coordinator",
    "FINAL_TAG",
    "FinalSnapshotGuard",
    "MediaFileInfo",
    "PERIODIC_TAG",
    "PeriodicSampler",
    "ProgressCounter",
    "ProgressReporter",
    "RunConfig",
    "RunOutcome",
    "SamplerState",
    "SnapshotCapturer",
    "SnapshotRequest",
    "SnapshotResult",
    "StopToken",
    "TerminationReason",
    "ThumbnailWork",
    "TimestampSource",
    "WorkerPool",
]
