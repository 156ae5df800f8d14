"""Structured logging configuration using structlog.

Library code only obtains loggers; nothing is emitted until an application
calls ``configure_logging``. Console output is human-readable (or JSON), and
a rotating JSON log is kept under ``~/.local/state/rollout-ops``.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import suppress
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

LOG_DIR_ENV = "ROLLOUT_OPS_LOG_DIR"
DEFAULT_LOG_DIR = Path.home() / ".local" / "state" / "rollout-ops"
LOG_FILE_NAME = "rollout-ops.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5
RETENTION_DAYS = 30

# Handlers installed by configure_logging, replaced on reconfiguration
_HANDLER_MARKER = "_rollout_ops_handler"

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def resolve_log_dir(log_dir: str | Path | None = None) -> Path:
    """Return the log directory: explicit argument, then env override, then default."""
    if log_dir is not None:
        return Path(log_dir).expanduser()
    if env_dir := os.environ.get(LOG_DIR_ENV):
        return Path(env_dir).expanduser()
    return DEFAULT_LOG_DIR


def _cleanup_old_logs(log_dir: Path) -> None:
    """Delete rotated log files older than RETENTION_DAYS."""
    if not log_dir.exists():
        return
    cutoff = datetime.now() - timedelta(days=RETENTION_DAYS)
    for log_file in log_dir.glob(f"{LOG_FILE_NAME}*"):
        # Another process may rotate or remove the file concurrently
        with suppress(FileNotFoundError):
            if datetime.fromtimestamp(log_file.stat().st_mtime) < cutoff:
                log_file.unlink()


def _file_handler(log_dir: Path) -> logging.Handler:
    """Rotating JSON file handler capturing every level."""
    log_dir.mkdir(parents=True, exist_ok=True)
    _cleanup_old_logs(log_dir)

    handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    )
    return handler


def _console_handler(log_level: int, json_output: bool, debug: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=debug),
        )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    )
    return handler


def configure_logging(
    verbose: bool = False,
    debug: bool = False,
    json_output: bool = False,
    log_dir: str | Path | None = None,
    file_logging: bool = True,
) -> None:
    """Configure structured logging for the application.

    Safe to call more than once; handlers installed by an earlier call are
    replaced rather than duplicated.

    Args:
        verbose: Enable verbose (INFO level) console output.
        debug: Enable debug mode (DEBUG level).
        json_output: Render console logs as JSON.
        log_dir: Directory for the rotating log file (see ``resolve_log_dir``).
        file_logging: Also write the rotating JSON log file.
    """
    if debug:
        log_level = logging.DEBUG
    elif verbose:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    # File logging captures DEBUG, so structlog must not drop anything below it
    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if file_logging else log_level
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root_logger.removeHandler(handler)
            handler.close()

    handlers = [_console_handler(log_level, json_output, debug)]
    if file_logging:
        handlers.append(_file_handler(resolve_log_dir(log_dir)))

    root_logger.setLevel(logging.DEBUG)
    for handler in handlers:
        setattr(handler, _HANDLER_MARKER, True)
        root_logger.addHandler(handler)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """Get a configured logger with optional initial context.

    Args:
        name: Logger name. If None, uses the calling module's name.
        **initial_context: Initial context variables to bind to the logger.

    Returns:
        A bound structlog logger.
    """
    logger: structlog.BoundLogger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
