"""Structured logging: JSON lines to a rotating file, console or JSON on stdout."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]

# Chatty third-party loggers kept at WARNING
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def setup_logging(
    log_dir: str,
    log_name: str = "vidblog",
    *,
    level: str = "INFO",
    json_stdout: bool = False,
) -> structlog.stdlib.BoundLogger:
    """Route stdlib and structlog output to ``{log_dir}/{log_name}.log`` and stdout.

    The file always receives DEBUG and above as JSON. Stdout gets ``level`` and
    above, rendered for humans unless ``json_stdout`` is set (containers).
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_path / f"{log_name}.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processor=structlog.processors.JSONRenderer(),
        )
    )

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(level.upper())
    stdout_renderer = structlog.processors.JSONRenderer() if json_stdout else structlog.dev.ConsoleRenderer()
    stdout_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processor=stdout_renderer,
        )
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    # Repeated calls (CLI + app factory) must not stack handlers
    root_logger.handlers.clear()
    root_logger.addHandler(file_handler)
    root_logger.addHandler(stdout_handler)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(log_name)


def bind_request_context(**values: object) -> None:
    """Attach values (request_id, owner_id, ...) to every log line of the current task."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**values)
