"""Public API surface for nmt_common."""

from nmt_common.errors import (
    ConfigurationError,
    NMTError,
    RunInterrupted,
    SnapshotCaptureError,
    TaskFailure,
    WorkloadError,
    error_to_payload,
)
from nmt_common.logging import bind_run_context, clear_run_context, configure_logging

__all__ = [
    "bind_run_context",
    "clear_run_context",
    "configure_logging",
    "ConfigurationError",
    "error_to_payload",
    "NMTError",
    "RunInterrupted",
    "SnapshotCaptureError",
    "TaskFailure",
    "WorkloadError",
]
