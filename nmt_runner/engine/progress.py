"""Completed-task counter and progress output."""

from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Optional, TextIO

from nmt_runner.models.types import RunOutcome, TerminationReason


class ProgressCounter:
    """Counter of completed tasks shared by every worker thread."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def increment_and_get(self) -> int:
        """Atomically add one and return the new value."""
        with self._lock:
            self._value += 1
            return self._value

    def current_value(self) -> int:
        return self._value


class ProgressReporter:
    """Write the in-place progress line and the run summary to stdout."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    def task_completed(self, count: int, worker_name: str) -> None:
        """Overwrite the progress line with the latest count."""
        self._write(f"\rTasks completed: {count} (by thread: {worker_name})")

    def summary(self, outcome: RunOutcome, input_path: Path) -> None:
        """Print the closing lines for a finished run."""
        if outcome.reason is TerminationReason.NORMAL_COMPLETION:
            self._write(
                f"\nAll tasks completed. Final count: {outcome.completed}\n"
                f"Processed video file: {input_path}\n"
            )
            return
        self._write(
            f"\nStopped after {outcome.completed} of {outcome.submitted} tasks "
            f"({outcome.reason.value}).\n"
        )

    def _write(self, text: str) -> None:
        stream = self._stream or sys.stdout
        with self._lock:
            try:
                stream.write(text)
                stream.flush()
            except (OSError, ValueError):
                # Never break a worker on the progress path
                pass
