"""Tests for RunConfig validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from nmt_common.errors import ConfigurationError
from nmt_runner.models.config import DEFAULT_SNAPSHOT_COMMAND, RunConfig


pytestmark = [pytest.mark.unit, pytest.mark.unit_runner]


def test_from_cli_args_parses_strings(video_file: Path) -> None:
    config = RunConfig.from_cli_args("4", "20", str(video_file), "5")
    assert config.worker_count == 4
    assert config.invocation_count == 20
    assert config.input_path == video_file
    assert config.sample_interval_seconds == 5
    assert config.sampling_enabled is True


def test_defaults(video_file: Path) -> None:
    config = RunConfig.from_cli_args("1", "1", str(video_file))
    assert config.sample_interval_seconds == 0
    assert config.sampling_enabled is False
    assert config.completion_timeout_seconds == 3600
    assert config.snapshot_command == DEFAULT_SNAPSHOT_COMMAND
    assert config.fail_fast is True
    assert config.canonical_input_path == video_file.resolve()


@pytest.mark.parametrize(
    "workers, invocations, interval, field",
    [
        ("0", "1", None, "worker_count"),
        ("-2", "1", None, "worker_count"),
        ("abc", "1", None, "worker_count"),
        ("1", "0", None, "invocation_count"),
        ("1", "1.5", None, "invocation_count"),
        ("1", "1", "-1", "sample_interval_seconds"),
    ],
)
def test_out_of_range_values_are_rejected(
    video_file: Path, workers: str, invocations: str, interval: str | None, field: str
) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        RunConfig.from_cli_args(workers, invocations, str(video_file), interval)
    assert field in str(excinfo.value)
    assert field in excinfo.value.context["fields"]


def test_missing_file_is_rejected(tmp_path: Path) -> None:
    missing = tmp_path / "missing.mp4"
    with pytest.raises(ConfigurationError, match="does not exist"):
        RunConfig.from_cli_args("1", "1", str(missing))


def test_directory_is_not_a_regular_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="not a regular file"):
        RunConfig.from_cli_args("1", "1", str(tmp_path))


def test_missing_arguments_are_reported(video_file: Path) -> None:
    with pytest.raises(ConfigurationError, match="invocation_count"):
        RunConfig.from_cli_args("1", None, str(video_file))


def test_snapshot_command_string_is_split(video_file: Path) -> None:
    config = RunConfig.from_cli_args(
        "1", "1", str(video_file), snapshot_command="cat '/proc/{pid}/status'"
    )
    assert config.snapshot_command == ("cat", "/proc/{pid}/status")


def test_empty_snapshot_command_is_rejected(video_file: Path) -> None:
    with pytest.raises(ConfigurationError, match="Snapshot command"):
        RunConfig.from_cli_args("1", "1", str(video_file), snapshot_command="  ")


def test_config_is_frozen(make_config) -> None:
    config = make_config()
    with pytest.raises(ValidationError):
        config.worker_count = 8
