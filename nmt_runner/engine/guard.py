"""One-shot latch guarding the final snapshot."""

from __future__ import annotations

import threading


class FinalSnapshotGuard:
    """Lets exactly one caller through, however many exit paths race for it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claimed = False

    def claim(self) -> bool:
        """Return True for the first caller only (compare-and-set on the latch)."""
        with self._lock:
            if self._claimed:
                return False
            self._claimed = True
            return True

    @property
    def is_set(self) -> bool:
        return self._claimed
