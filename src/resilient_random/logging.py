"""Structured logging for the random-number client.

Components log named events (``random_number.*``, ``circuit_breaker.*``) with
keyword fields. Any logger works: structlog loggers receive the fields as
event keys, stdlib loggers receive them through ``extra``.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Literal, Protocol

import structlog

LogMethod = Literal["debug", "info", "warning", "error", "exception"]

_LOG_LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_StdlibLogger = logging.Logger | logging.LoggerAdapter[logging.Logger]


class StructuredLogger(Protocol):
    """Anything with structlog-style ``method(event, **fields)`` calls."""

    def debug(self, event: str, **kwargs: object) -> None: ...

    def info(self, event: str, **kwargs: object) -> None: ...

    def warning(self, event: str, **kwargs: object) -> None: ...

    def error(self, event: str, **kwargs: object) -> None: ...

    def exception(self, event: str, **kwargs: object) -> None: ...


AnyLogger = StructuredLogger | _StdlibLogger


def get_log_level_value(level: str) -> int:
    """Map a case-insensitive level name onto its stdlib constant."""
    normalized = level.strip().upper()
    if normalized not in _LOG_LEVEL_NAMES:
        raise ValueError(f"log_level must be one of: {', '.join(_LOG_LEVEL_NAMES)}")
    return logging.getLevelNamesMapping()[normalized]


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.stdlib.get_logger(name)


@contextmanager
def request_log_context(**fields: object) -> Iterator[None]:
    """Attach ``fields`` to every event logged in this task until exit."""
    with structlog.contextvars.bound_contextvars(**fields):
        yield


def _emit(
    logger: AnyLogger,
    method: LogMethod,
    event: str,
    fields: dict[str, object],
) -> None:
    log = getattr(logger, method)
    if isinstance(logger, (logging.Logger, logging.LoggerAdapter)):
        log(event, extra=fields)
    else:
        log(event, **fields)


def log_debug(logger: AnyLogger, event: str, **fields: object) -> None:
    _emit(logger, "debug", event, fields)


def log_info(logger: AnyLogger, event: str, **fields: object) -> None:
    _emit(logger, "info", event, fields)


def log_warning(logger: AnyLogger, event: str, **fields: object) -> None:
    _emit(logger, "warning", event, fields)


def log_error(logger: AnyLogger, event: str, **fields: object) -> None:
    _emit(logger, "error", event, fields)


def log_exception(logger: AnyLogger, event: str, **fields: object) -> None:
    """Log an error event together with the active exception's traceback."""
    _emit(logger, "exception", event, fields)


def _select_renderer(json_logs: bool | None) -> structlog.types.Processor:
    if json_logs is None:
        json_logs = not sys.stderr.isatty()
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def configure_structlog(
    *,
    log_level: str,
    json_logs: bool | None = None,
) -> structlog.stdlib.BoundLogger:
    """Route structlog and stdlib records through one stderr handler.

    Args:
        log_level: Root level name, for example ``"INFO"``.
        json_logs: Force JSON (``True``) or console (``False``) output.
            ``None`` picks console output when stderr is a terminal.

    Calling this again replaces the previous handler.
    """
    level_value = get_log_level_value(log_level)
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        timestamper,
    ]

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _select_renderer(json_logs),
            ],
        )
    )
    logging.basicConfig(
        format="%(message)s",
        handlers=[handler],
        level=level_value,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.stdlib.get_logger()
