import threading
import time
from collections import defaultdict
from pathlib import Path
from typing import Any, Callable

import pytest
from rich.console import Console
from rich.table import Table

from nmt_runner.models.config import RunConfig
from nmt_runner.models.types import SnapshotResult


def pytest_terminal_summary(terminalreporter, exitstatus, config):
    """
    Custom hook to print statistics by marker at the end of the test session.
    """
    _ = (exitstatus, config)
    known_markers = {"unit", "unit_common", "unit_runner", "unit_ui", "slow"}
    marker_stats = defaultdict(lambda: {"passed": 0, "failed": 0, "skipped": 0, "total": 0, "duration": 0.0})

    for outcome in ["passed", "failed", "skipped"]:
        reports = terminalreporter.stats.get(outcome, [])
        for report in reports:
            # Only count the actual test call, or setup skips
            if report.when == "call" or (report.when == "setup" and report.outcome == "skipped"):
                duration = getattr(report, "duration", 0.0)
                for marker in known_markers:
                    if marker in report.keywords:
                        stats = marker_stats[marker]
                        stats[outcome] += 1
                        stats["total"] += 1
                        stats["duration"] += duration

    if not marker_stats:
        return

    table = Table(title="Test Statistics by Marker", show_header=True, header_style="bold magenta")
    table.add_column("Marker", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Passed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Duration (s)", justify="right", style="blue")

    for marker in sorted(marker_stats):
        stats = marker_stats[marker]
        if stats["total"] > 0:
            table.add_row(
                marker,
                str(stats["total"]),
                str(stats["passed"]),
                str(stats["failed"]),
                str(stats["skipped"]),
                f"{stats['duration']:.2f}",
            )

    console = Console()
    console.print("\n")
    console.print(table)


class RecordingCapturer:
    """Stand-in for SnapshotCapturer that records captures instead of spawning processes."""

    def __init__(self, events: list | None = None, delay: float = 0.0) -> None:
        self.calls: list[tuple[str, str]] = []
        self.events = events if events is not None else []
        self.delay = delay
        self._lock = threading.Lock()
        self._sequence = 0

    def capture_tagged(self, base_name: str, description: str) -> SnapshotResult:
        with self._lock:
            self._sequence += 1
            sequence = self._sequence
            self.calls.append((base_name, description))
            self.events.append(("snapshot", base_name))
        if self.delay:
            time.sleep(self.delay)
        return SnapshotResult(
            description=description,
            output_path=Path(f"{base_name}-{sequence:04d}.log"),
            error_path=Path(f"{base_name}-{sequence:04d}.err"),
            success=True,
            exit_code=0,
        )

    def tags(self) -> list[str]:
        with self._lock:
            return [tag for tag, _ in self.calls]

    def descriptions(self, tag: str) -> list[str]:
        with self._lock:
            return [desc for name, desc in self.calls if name == tag]


@pytest.fixture
def video_file(tmp_path: Path) -> Path:
    """A regular file standing in for the subject video."""
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    return path


@pytest.fixture
def make_config(video_file: Path, tmp_path: Path) -> Callable[..., RunConfig]:
    def _make(**overrides: Any) -> RunConfig:
        values: dict[str, Any] = {
            "worker_count": 2,
            "invocation_count": 4,
            "input_path": video_file,
            "output_dir": tmp_path / "snapshots",
        }
        values.update(overrides)
        return RunConfig(**values)

    return _make


@pytest.fixture
def recording_capturer() -> Callable[..., RecordingCapturer]:
    return RecordingCapturer
