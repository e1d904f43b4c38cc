"""
Background periodic snapshot sampler.

The sampler owns one daemon thread that calls a capture function at a fixed
rate. The first capture happens one full interval after start, never at
start itself, so a run lasting T seconds produces floor(T / interval)
captures.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional

from nmt_common.errors import ConfigurationError
from nmt_runner.models.config import DEFAULT_SAMPLER_GRACE_SECONDS


logger = logging.getLogger(__name__)


class SamplerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class PeriodicSampler:
    """One-shot periodic timer: idle, then running, then stopped for good."""

    def __init__(
        self,
        capture: Callable[[], Any],
        grace_seconds: float = DEFAULT_SAMPLER_GRACE_SECONDS,
        name: str = "nmt-sampler",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the sampler.

        Args:
            capture: Called once per interval boundary on the sampler thread
            grace_seconds: How long stop() waits for the thread to exit
            name: Thread name
            clock: Monotonic clock used for the fixed-rate schedule
        """
        self.name = name
        self.grace_seconds = grace_seconds
        self.interval_seconds: Optional[float] = None
        self._capture = capture
        self._clock = clock
        self._state = SamplerState.IDLE
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._captures = 0
        self._abandoned = False

    @property
    def state(self) -> SamplerState:
        return self._state

    @property
    def capture_count(self) -> int:
        return self._captures

    @property
    def abandoned(self) -> bool:
        """True when stop() gave up waiting for the thread."""
        return self._abandoned

    def start(self, interval_seconds: float) -> None:
        """Start the background timer; the first capture fires after one interval."""
        if interval_seconds <= 0:
            raise ConfigurationError(
                "Sampling interval must be positive",
                context={"interval_seconds": interval_seconds},
            )
        with self._state_lock:
            if self._state is SamplerState.RUNNING:
                logger.warning("%s is already running", self.name)
                return
            if self._state is SamplerState.STOPPED:
                raise RuntimeError(f"{self.name} was stopped and cannot be restarted")
            self._state = SamplerState.RUNNING
            self.interval_seconds = interval_seconds
            self._thread = threading.Thread(
                target=self._sampling_loop, name=self.name, daemon=True
            )
            self._thread.start()
        logger.info("Periodic NMT dumps enabled every %s seconds", interval_seconds)

    def stop(self) -> None:
        """Stop sampling and wait (bounded) for the thread; safe to call repeatedly."""
        with self._state_lock:
            if self._state is SamplerState.STOPPED:
                return
            was_running = self._state is SamplerState.RUNNING
            self._state = SamplerState.STOPPED
            thread = self._thread
        self._stop_event.set()
        if not was_running or thread is None:
            return
        thread.join(timeout=self.grace_seconds)
        if thread.is_alive():
            self._abandoned = True
            logger.warning(
                "%s did not stop within %.1fs; abandoning its thread",
                self.name,
                self.grace_seconds,
            )
            return
        logger.info("%s stopped after %d capture(s)", self.name, self._captures)

    def _sampling_loop(self) -> None:
        interval = self.interval_seconds or 0.0
        next_due = self._clock() + interval
        while not self._stop_event.wait(max(0.0, next_due - self._clock())):
            try:
                self._capture()
            except Exception as exc:
                logger.error("Periodic capture failed: %s", exc, exc_info=True)
            self._captures += 1
            next_due += interval
