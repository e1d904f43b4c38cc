"""Stop token helpers for graceful interruption and file-based cancellation."""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import Callable, Dict, Optional


logger = logging.getLogger(__name__)


class StopToken:
    """
    Lightweight cooperative stop controller.

    It can be tripped by signals (SIGINT/SIGTERM) or by the presence of a stop
    file on disk. The coordinator polls `should_stop()` while it waits on the
    worker pool and treats a tripped token as an interruption; the CLI checks
    it again once the run has returned, so a stop that lands during the final
    snapshot is still honoured. The signal that tripped the token is kept in
    `signum` so it can be reported once cleanup is done.
    """

    def __init__(
        self,
        stop_file: Optional[Path] = None,
        enable_signals: bool = True,
    ) -> None:
        self.stop_file = stop_file
        self.signum: Optional[int] = None
        self._stop_requested = False
        self._lock = threading.Lock()
        self._prev_handlers: Dict[int, Callable] = {}
        if enable_signals:
            self._install_signal_handlers()

    def _install_signal_handlers(self) -> None:
        """Capture SIGINT/SIGTERM and mark the token as stopped."""
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                self._prev_handlers[sig] = signal.getsignal(sig)
                signal.signal(sig, self._handle_signal)  # type: ignore[arg-type]
            except (ValueError, OSError):
                # Not on the main thread; run without signal handling.
                continue

    def _handle_signal(self, signum: int, frame) -> None:  # type: ignore[override]
        if self.signum is None:
            self.signum = signum
        self.request_stop()

    def request_stop(self) -> None:
        """Mark the token as stopped."""
        with self._lock:
            self._stop_requested = True

    def should_stop(self) -> bool:
        """Return True when stop was requested or the stop file exists."""
        if self._stop_requested:
            return True
        if self.stop_file and self.stop_file.exists():
            logger.info("Stop file detected: %s", self.stop_file)
            self.request_stop()
            return True
        return False

    def restore(self) -> None:
        """Restore the signal handlers that were installed before this token."""
        for sig, handler in self._prev_handlers.items():
            try:
                signal.signal(sig, handler)  # type: ignore[arg-type]
            except (ValueError, OSError, TypeError):
                continue
        self._prev_handlers.clear()

    def __enter__(self) -> "StopToken":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()
