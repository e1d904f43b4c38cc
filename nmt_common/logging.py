"""Shared logging configuration using structlog.

Harness diagnostics (capture starts, capture failures, timeouts, interrupts)
are routed through stdlib logging and rendered by structlog on stderr. Stdout
is left to the PID line, the in-place progress line and the run summary.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Optional, TextIO

import structlog

LOG_LEVEL_ENV = "NMT_LOG_LEVEL"
LOG_JSON_ENV = "NMT_LOG_JSON"
LOG_FILE_ENV = "NMT_LOG_FILE"

# Chatty third-party loggers; Pillow logs every PNG chunk at DEBUG.
NOISY_LOGGERS = ("PIL", "libav")


def _resolve_level(value: str | int | None, debug: bool) -> int:
    if debug:
        return logging.DEBUG
    if value is None:
        return logging.INFO
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    return logging._nameToLevel.get(value.upper(), logging.INFO)


def _resolve_bool(value: str | None) -> Optional[bool]:
    if value is None:
        return None
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def configure_logging(
    *,
    level: str | int | None = None,
    debug: bool = False,
    log_file: str | None = None,
    json: bool | None = None,
    force: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Configure stdlib logging and structlog with a shared formatter.

    Explicit arguments win over the ``NMT_LOG_*`` environment variables. When
    the root logger already has handlers and ``force`` is False, only the
    structlog side is (re)configured.
    """
    resolved_level = _resolve_level(level or os.environ.get(LOG_LEVEL_ENV), debug)
    env_json = _resolve_bool(os.environ.get(LOG_JSON_ENV))
    resolved_json = env_json if json is None else json
    resolved_log_file = os.environ.get(LOG_FILE_ENV) if log_file is None else log_file

    root_logger = logging.getLogger()
    if root_logger.handlers and not force:
        _configure_structlog()
        return

    renderer: structlog.types.Processor
    if resolved_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=_shared_processors(),
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if resolved_log_file:
        handlers.append(logging.FileHandler(resolved_log_file))

    if force:
        root_logger.handlers.clear()
    root_logger.setLevel(resolved_level)
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    noisy_level = max(resolved_level, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)

    _configure_structlog()


def bind_run_context(**values: Any) -> None:
    """Attach run-wide fields to later log records emitted from the calling thread."""
    structlog.contextvars.bind_contextvars(**values)


def clear_run_context() -> None:
    structlog.contextvars.clear_contextvars()
