"""
Native memory snapshot capture.

A snapshot is produced by an external diagnostic command run against the
harness process. Its stdout and stderr are redirected to a pair of files
whose names carry the purpose tag and a millisecond timestamp, so repeated
or overlapping captures never write to the same file.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional, Sequence

import psutil

from nmt_common.errors import SnapshotCaptureError
from nmt_runner.models.config import (
    DEFAULT_SNAPSHOT_COMMAND,
    DEFAULT_SNAPSHOT_TIMEOUT_SECONDS,
    RunConfig,
)
from nmt_runner.models.types import SnapshotRequest, SnapshotResult


logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S-%f"
PID_PLACEHOLDER = "{pid}"


def format_timestamp(moment: datetime) -> str:
    """Render a filename-safe timestamp with millisecond resolution."""
    return moment.strftime(TIMESTAMP_FORMAT)[:-3]


class TimestampSource:
    """Hand out capture timestamps that strictly increase per instance.

    Two captures landing in the same millisecond get consecutive
    milliseconds instead of the same string.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._last: Optional[datetime] = None

    def next(self) -> str:
        with self._lock:
            now = self._clock()
            moment = now.replace(microsecond=(now.microsecond // 1000) * 1000)
            if self._last is not None and moment <= self._last:
                moment = self._last + timedelta(milliseconds=1)
            self._last = moment
            return format_timestamp(moment)


class SnapshotCapturer:
    """Run the diagnostic command and report success or failure without raising."""

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_SNAPSHOT_COMMAND,
        output_dir: Optional[Path] = None,
        pid: Optional[int] = None,
        timeout_seconds: float = DEFAULT_SNAPSHOT_TIMEOUT_SECONDS,
        timestamps: Optional[TimestampSource] = None,
    ) -> None:
        self.command = tuple(command)
        self.output_dir = Path(output_dir) if output_dir is not None else Path.cwd()
        self.pid = pid if pid is not None else os.getpid()
        self.timeout_seconds = timeout_seconds
        self._timestamps = timestamps or TimestampSource()

    @classmethod
    def from_config(cls, config: RunConfig) -> "SnapshotCapturer":
        return cls(
            command=config.snapshot_command,
            output_dir=config.output_dir,
            timeout_seconds=config.snapshot_timeout_seconds,
        )

    def build_command(self) -> list[str]:
        """Return the command line with the PID placeholder filled in."""
        return [part.replace(PID_PLACEHOLDER, str(self.pid)) for part in self.command]

    def new_request(self, base_name: str, description: str) -> SnapshotRequest:
        return SnapshotRequest(
            base_name=base_name,
            description=description,
            timestamp=self._timestamps.next(),
        )

    def capture_tagged(self, base_name: str, description: str) -> SnapshotResult:
        """Capture into ``<base_name>-<timestamp>.log`` and ``.err``."""
        request = self.new_request(base_name, description)
        return self.capture(
            self.output_dir / request.output_name,
            self.output_dir / request.error_name,
            request.description,
        )

    def capture(
        self,
        output_target: Path,
        error_target: Path,
        description: str,
    ) -> SnapshotResult:
        """
        Run the diagnostic command, blocking until it exits.

        Args:
            output_target: File receiving the command's stdout
            error_target: File receiving the command's stderr
            description: Human readable label for logs

        Returns:
            SnapshotResult; ``success`` is True only for exit status zero.
        """
        output_target = Path(output_target)
        error_target = Path(error_target)
        command = self.build_command()
        logger.info("Capturing NMT dump: %s", description)

        exit_code: Optional[int] = None
        error: Optional[SnapshotCaptureError] = None
        context = {
            "description": description,
            "command": command,
            "output": output_target,
            "error_output": error_target,
        }
        start = time.monotonic()
        try:
            output_target.parent.mkdir(parents=True, exist_ok=True)
            with open(output_target, "wb") as out, open(error_target, "wb") as err:
                completed = subprocess.run(
                    command,
                    stdout=out,
                    stderr=err,
                    timeout=self.timeout_seconds,
                    check=False,
                )
            exit_code = completed.returncode
            if exit_code != 0:
                error = SnapshotCaptureError(
                    "Snapshot command exited with non-zero status",
                    context={**context, "exit_code": exit_code},
                )
                logger.error("Failed to capture NMT dump. Exit code: %s", exit_code)
        except subprocess.TimeoutExpired as exc:
            error = SnapshotCaptureError(
                f"Snapshot command timed out after {self.timeout_seconds}s",
                context=context,
                cause=exc,
            )
            logger.error("Snapshot command timed out: %s", description)
        except OSError as exc:
            error = SnapshotCaptureError(
                "Snapshot command could not be started",
                context=context,
                cause=exc,
            )
            logger.error("Error capturing NMT dump: %s (%s)", description, exc)

        return SnapshotResult(
            description=description,
            output_path=output_target,
            error_path=error_target,
            success=error is None,
            exit_code=exit_code,
            duration_seconds=time.monotonic() - start,
            rss_bytes=self._current_rss(),
            error=error,
        )

    def _current_rss(self) -> Optional[int]:
        try:
            return psutil.Process(self.pid).memory_info().rss
        except psutil.Error as exc:
            logger.debug("Could not read RSS for pid %s: %s", self.pid, exc)
            return None
