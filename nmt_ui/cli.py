"""
Command-line interface for nmt-harness.

Runs the thumbnail workload on a fixed-size worker pool while capturing
native memory snapshots of the harness process: a baseline before any worker
starts, optional periodic dumps, and one final dump tagged with the reason the
run ended.
"""

from __future__ import annotations

import logging
import os
import signal
from pathlib import Path
from typing import Any, Callable, Optional

import typer

from nmt_common.errors import ConfigurationError, RunInterrupted, TaskFailure, error_to_payload
from nmt_common.logging import bind_run_context, clear_run_context, configure_logging
from nmt_runner.engine.coordinator import Coordinator
from nmt_runner.models.config import RunConfig
from nmt_runner.models.types import RunOutcome, TerminationReason
from nmt_runner.services.snapshot import SnapshotCapturer
from nmt_runner.stop_token import StopToken
from nmt_runner.workload.thumbnail import ThumbnailWork, quiet_av_logging


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIGURATION_ERROR = 1
EXIT_TASK_FAILURE = 2
EXIT_TIMEOUT = 3

USAGE = (
    "Usage: nmt-harness <numThreads> <numInvocations> <videoFilePath> [dumpIntervalSeconds]\n"
    "  dumpIntervalSeconds: NMT dump interval in seconds (0 or omitted disables periodic dumps)"
)

app = typer.Typer(
    help="Stress the thumbnail workload while sampling native memory usage.",
    add_completion=False,
)


def _exit_code_for(reason: TerminationReason, failed: int) -> int:
    if reason is TerminationReason.TIMEOUT:
        return EXIT_TIMEOUT
    if reason is TerminationReason.TASK_FAILURE or failed:
        return EXIT_TASK_FAILURE
    return EXIT_OK


def _interrupted_exit(signum: Optional[int]) -> int:
    typer.echo("\nInterrupted while waiting for workers to terminate.", err=True)
    return 128 + int(signum or signal.SIGINT)


def _report_outcome(outcome: Optional[RunOutcome]) -> None:
    if outcome is None:
        return
    final = outcome.final_snapshot
    logger.info(
        "Run finished (%s) in %.1fs: %d periodic dump(s), final dump %s (rss=%s)",
        outcome.reason.value,
        outcome.elapsed_seconds,
        outcome.periodic_captures,
        final.output_path if final is not None else "missing",
        final.rss_bytes if final is not None else None,
    )
    if outcome.sampler_abandoned:
        typer.echo("Periodic sampler did not stop in time; its thread was abandoned.", err=True)
    failed = outcome.failed_snapshots
    for result in failed:
        if result.error is not None:
            logger.warning("Snapshot capture failed: %s", error_to_payload(result.error))
    if failed:
        typer.echo(f"{len(failed)} snapshot capture(s) failed.", err=True)


def execute(
    config: RunConfig,
    *,
    work: Optional[Callable[[], Any]] = None,
    capturer: Optional[SnapshotCapturer] = None,
    stop_file: Optional[Path] = None,
    enable_signals: bool = True,
) -> int:
    """Run the coordinator and translate its outcome into an exit status.

    Interruptions come back as ``128 + signal`` (130 for SIGINT or the stop
    file) once the sampler is stopped and the final snapshot is taken. A stop
    request that arrives after the workers finished, while the sampler stops
    or the final snapshot runs, is reported the same way.
    """
    work = work or ThumbnailWork(config.input_path)
    with StopToken(stop_file=stop_file, enable_signals=enable_signals) as stop_token:
        coordinator = Coordinator(config, work, capturer=capturer, stop_token=stop_token)
        try:
            outcome = coordinator.run()
        except RunInterrupted as exc:
            _report_outcome(coordinator.outcome)
            return _interrupted_exit(exc.signum)
        except KeyboardInterrupt:
            coordinator.shutdown(TerminationReason.INTERRUPTED)
            _report_outcome(coordinator.outcome)
            return _interrupted_exit(signal.SIGINT)
        except TaskFailure as exc:
            logger.error("Run aborted by task failure: %s", error_to_payload(exc), exc_info=exc)
            _report_outcome(coordinator.outcome)
            typer.echo(f"\nFatal task failure: {exc}", err=True)
            return EXIT_TASK_FAILURE
        interrupted_late = stop_token.should_stop()
    _report_outcome(outcome)
    if interrupted_late:
        logger.warning("Stop requested after the workers finished (%s)", outcome.reason.value)
        return _interrupted_exit(stop_token.signum)
    if outcome.reason is TerminationReason.TIMEOUT:
        typer.echo("\nTimeout while waiting for tasks to complete.", err=True)
    if outcome.failed:
        typer.echo(f"{outcome.failed} task(s) failed.", err=True)
    return _exit_code_for(outcome.reason, outcome.failed)


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def run(
    ctx: typer.Context,
    worker_count: Optional[str] = typer.Argument(
        None, metavar="WORKERS", help="Number of worker threads (positive integer)."
    ),
    invocation_count: Optional[str] = typer.Argument(
        None, metavar="INVOCATIONS", help="Number of workload invocations (positive integer)."
    ),
    input_path: Optional[str] = typer.Argument(
        None, metavar="PATH", help="Video file processed by every invocation."
    ),
    sample_interval: Optional[str] = typer.Argument(
        None, metavar="[INTERVAL]", help="Periodic dump interval in seconds; 0 disables."
    ),
    timeout: Optional[str] = typer.Option(
        None, "--timeout", help="Upper bound in seconds for waiting on the workers (default 3600)."
    ),
    output_dir: Optional[Path] = typer.Option(
        None, "--output-dir", envvar="NMT_OUTPUT_DIR", help="Directory for snapshot files."
    ),
    snapshot_command: Optional[str] = typer.Option(
        None,
        "--snapshot-command",
        envvar="NMT_SNAPSHOT_COMMAND",
        help="Diagnostic command; '{pid}' is replaced by the harness PID.",
    ),
    snapshot_timeout: Optional[str] = typer.Option(
        None, "--snapshot-timeout", help="Kill a snapshot command running longer than this."
    ),
    stop_file: Optional[Path] = typer.Option(
        None, "--stop-file", help="Interrupt the run when this file appears."
    ),
    keep_going: bool = typer.Option(
        False, "--keep-going", help="Log task failures and continue instead of aborting."
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging."),
    log_json: Optional[bool] = typer.Option(
        None, "--log-json/--no-log-json", help="Render log records as JSON."
    ),
) -> None:
    """Run WORKERS threads through INVOCATIONS thumbnail jobs on PATH."""
    configure_logging(debug=debug, json=log_json, force=True)
    try:
        if ctx.args:
            raise ConfigurationError(
                f"Unexpected extra argument(s): {' '.join(ctx.args)}",
                context={"extra": ctx.args},
            )
        config = RunConfig.from_cli_args(
            worker_count,
            invocation_count,
            input_path,
            sample_interval,
            completion_timeout_seconds=timeout,
            output_dir=output_dir,
            snapshot_command=snapshot_command,
            snapshot_timeout_seconds=snapshot_timeout,
            fail_fast=not keep_going,
        )
    except ConfigurationError as exc:
        typer.echo(USAGE, err=True)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_CONFIGURATION_ERROR)

    typer.echo(f"PID: {os.getpid()}")
    quiet_av_logging()
    bind_run_context(
        pid=os.getpid(),
        workers=config.worker_count,
        invocations=config.invocation_count,
    )
    try:
        code = execute(config, stop_file=stop_file)
    finally:
        clear_run_context()
    raise typer.Exit(code=code)


def main() -> None:
    """Invoke the nmt-harness Typer application."""
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
