"""Run configuration (validated once at startup, immutable afterwards)."""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Any, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from nmt_common.errors import ConfigurationError

DEFAULT_SNAPSHOT_COMMAND: Tuple[str, ...] = ("pmap", "-x", "{pid}")
DEFAULT_COMPLETION_TIMEOUT_SECONDS = 3600.0
DEFAULT_SAMPLER_GRACE_SECONDS = 3.0
DEFAULT_SNAPSHOT_TIMEOUT_SECONDS = 120.0


class RunConfig(BaseModel):
    """Parameters for one harness run."""

    model_config = ConfigDict(frozen=True)

    worker_count: int = Field(gt=0, description="Number of concurrent worker threads")
    invocation_count: int = Field(ge=1, description="Number of unit-of-work invocations to submit")
    input_path: Path = Field(description="Subject media file processed by every invocation")
    sample_interval_seconds: int = Field(
        default=0, ge=0, description="Periodic snapshot interval in seconds (0 disables sampling)"
    )
    completion_timeout_seconds: float = Field(
        default=DEFAULT_COMPLETION_TIMEOUT_SECONDS,
        gt=0,
        description="Upper bound for waiting on the worker pool",
    )
    sampler_grace_seconds: float = Field(
        default=DEFAULT_SAMPLER_GRACE_SECONDS,
        gt=0,
        description="How long stop() waits for the sampler thread before abandoning it",
    )
    snapshot_command: Tuple[str, ...] = Field(
        default=DEFAULT_SNAPSHOT_COMMAND,
        description="Diagnostic command template; '{pid}' is replaced by the harness PID",
    )
    snapshot_timeout_seconds: float = Field(
        default=DEFAULT_SNAPSHOT_TIMEOUT_SECONDS,
        gt=0,
        description="Kill the diagnostic command when it runs longer than this",
    )
    output_dir: Path = Field(default_factory=Path.cwd, description="Directory receiving snapshot files")
    fail_fast: bool = Field(
        default=True,
        description="Abort the run on the first task failure instead of logging and continuing",
    )

    @field_validator("snapshot_command", mode="before")
    @classmethod
    def _split_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(shlex.split(value))
        return value

    @model_validator(mode="after")
    def _validate_paths(self) -> "RunConfig":
        if not self.snapshot_command:
            raise ValueError("Snapshot command cannot be empty.")
        path = self.input_path
        if not path.exists():
            raise ValueError(f"Video file does not exist: {path.absolute()}")
        if not path.is_file():
            raise ValueError(f"Path is not a regular file: {path.absolute()}")
        if self.output_dir.exists() and not self.output_dir.is_dir():
            raise ValueError(f"Output path is not a directory: {self.output_dir.absolute()}")
        return self

    @property
    def sampling_enabled(self) -> bool:
        return self.sample_interval_seconds > 0

    @property
    def canonical_input_path(self) -> Path:
        return self.input_path.resolve()

    @classmethod
    def from_cli_args(
        cls,
        worker_count: Any,
        invocation_count: Any,
        input_path: Any,
        sample_interval_seconds: Any = None,
        **overrides: Any,
    ) -> "RunConfig":
        """Build a validated config from raw command-line values.

        Raises:
            ConfigurationError: when any value is missing, malformed or out of range.
        """
        raw = {
            "worker_count": worker_count,
            "invocation_count": invocation_count,
            "input_path": input_path,
        }
        missing = [name for name, value in raw.items() if value is None]
        if missing:
            raise ConfigurationError(
                f"Missing required argument(s): {', '.join(missing)}",
                context={"missing": missing},
            )
        if sample_interval_seconds is not None:
            raw["sample_interval_seconds"] = sample_interval_seconds
        raw.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return cls(**raw)
        except ValidationError as exc:
            raise ConfigurationError(
                _format_validation_error(exc),
                context={"fields": [".".join(str(p) for p in err["loc"]) for err in exc.errors()]},
                cause=exc,
            ) from exc


def _format_validation_error(exc: ValidationError) -> str:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"])
        message = str(err["msg"])
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages)
