"""Value types shared by the coordinator, sampler and snapshot capturer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from nmt_common.errors import SnapshotCaptureError

BASELINE_TAG = "nmt-baseline"
PERIODIC_TAG = "nmt-periodic"
FINAL_TAG = "nmt-final"


class TerminationReason(str, Enum):
    """Why the coordinator stopped waiting on the worker pool."""

    NORMAL_COMPLETION = "normal completion"
    TIMEOUT = "timeout"
    INTERRUPTED = "interrupted"
    TASK_FAILURE = "task failure"

    @property
    def final_description(self) -> str:
        return f"Final ({self.value})"


@dataclass(frozen=True)
class SnapshotRequest:
    """One capture: purpose tag, human label and capture-time stamp."""

    base_name: str
    description: str
    timestamp: str

    @property
    def output_name(self) -> str:
        return f"{self.base_name}-{self.timestamp}.log"

    @property
    def error_name(self) -> str:
        return f"{self.base_name}-{self.timestamp}.err"


@dataclass
class SnapshotResult:
    """Outcome of a single diagnostic capture."""

    description: str
    output_path: Path
    error_path: Path
    success: bool
    exit_code: Optional[int] = None
    duration_seconds: float = 0.0
    rss_bytes: Optional[int] = None
    error: Optional[SnapshotCaptureError] = None


@dataclass
class RunOutcome:
    """Summary of one coordinator run."""

    reason: TerminationReason
    completed: int
    submitted: int
    failed: int = 0
    elapsed_seconds: float = 0.0
    snapshots: list[SnapshotResult] = field(default_factory=list)
    periodic_captures: int = 0
    sampler_abandoned: bool = False

    @property
    def final_snapshot(self) -> Optional[SnapshotResult]:
        finals = [s for s in self.snapshots if s.output_path.name.startswith(FINAL_TAG)]
        return finals[-1] if finals else None

    @property
    def failed_snapshots(self) -> list[SnapshotResult]:
        return [s for s in self.snapshots if not s.success]
