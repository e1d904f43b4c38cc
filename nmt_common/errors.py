"""Shared error taxonomy for nmt-harness."""

from __future__ import annotations

from typing import Any, Mapping


def _normalize_context_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return normalize_context(value)
    if isinstance(value, (list, tuple)):
        return [_normalize_context_value(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def normalize_context(context: Mapping[str, Any]) -> dict[str, Any]:
    """Return a JSON-friendly copy of an error context mapping."""
    return {key: _normalize_context_value(val) for key, val in context.items()}


class NMTError(Exception):
    """Base error type for typed failure handling."""

    def __init__(
        self,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.context = normalize_context(context or {})
        if cause is not None:
            self.__cause__ = cause

    @property
    def error_type(self) -> str:
        return self.__class__.__name__


class ConfigurationError(NMTError):
    """Invalid command-line input or missing subject resource."""


class SnapshotCaptureError(NMTError):
    """The diagnostic command could not be spawned, timed out or exited non-zero."""


class WorkloadError(NMTError):
    """Failure while executing the unit of work or cleaning up after it."""


class TaskFailure(WorkloadError):
    """A worker task failed; carries the index of the submitted task."""

    def __init__(
        self,
        message: str,
        *,
        task_index: int,
        context: Mapping[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        merged = {"task_index": task_index, **(context or {})}
        super().__init__(message, context=merged, cause=cause)
        self.task_index = task_index


class RunInterrupted(NMTError):
    """External cancellation observed while waiting for the worker pool."""

    def __init__(
        self,
        message: str = "Run interrupted",
        *,
        signum: int | None = None,
        context: Mapping[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        merged = {"signal": signum, **(context or {})}
        super().__init__(message, context=merged, cause=cause)
        self.signum = signum


def error_to_payload(error: NMTError) -> dict[str, Any]:
    """Convert an NMTError to a summary payload."""
    return {
        "error_type": error.error_type,
        "error": str(error),
        "error_context": error.context,
    }
