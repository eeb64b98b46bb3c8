"""Structured logging for corpuslab, built on structlog.

One shared processor chain (context vars, level, timestamp, stack info)
feeds either a coloured ConsoleRenderer in development or a JSONRenderer in
production.  ``APP_ENV=production`` or ``json_output=True`` selects JSON.

Standard-library ``logging`` is routed through the same formatter so uvicorn
access lines look like our own events.  The storage and HTTP client
libraries log every statement or request; they are held at WARNING unless
the service itself runs at DEBUG.

Request-scoped identifiers (an annotation ``run_id``, a ``cache_key``) are
bound with :func:`log_context` and appear on every event emitted inside the
block, including events from the providers the block calls into.
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

# Libraries that log per SQL statement or per HTTP request.
NOISY_LOGGERS: tuple[str, ...] = ("aiosqlite", "httpx", "httpcore")


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    noisy_loggers: tuple[str, ...] = NOISY_LOGGERS,
) -> structlog.BoundLogger:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output. Otherwise JSON is used only when
                     APP_ENV is ``production``.
        noisy_loggers: Stdlib loggers capped at WARNING unless *log_level*
                       is DEBUG.

    Returns:
        A configured structlog BoundLogger.
    """
    level = log_level.upper()
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"

    # merge_contextvars first: log_context() bindings sit under the level/timestamp.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *shared_processors,
                renderer,
            ],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    if level != "DEBUG":
        for name in noisy_loggers:
            logging.getLogger(name).setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger bound to *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)


@contextmanager
def log_context(**bindings: Any) -> Iterator[None]:
    """Bind *bindings* to every event logged inside the block.

    ``None`` values are skipped.  Bindings are context-local, so tasks
    created inside the block inherit them and concurrent runs never see
    each other's identifiers.
    """
    values = {key: value for key, value in bindings.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**values):
        yield
