# src/jobstash/core/logging.py
"""Logging setup for jobstash.

structlog and stdlib logging share one handler on stderr; stdout belongs to
command output. Workers bind worker_id, server and session with
structlog.contextvars and every line carries them.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

# Statement echo and pool chatter from the database stack
_QUIET_LOGGERS: tuple[str, ...] = ("sqlalchemy", "sqlalchemy.engine", "sqlalchemy.pool", "pyodbc")


def _drop_formatter_keys(logger: logging.Logger | None, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Strip the bookkeeping keys ProcessorFormatter adds to every record."""
    event_dict.pop("_record", None)
    event_dict.pop("_from_structlog", None)
    return event_dict


def _render_chain(json_output: bool) -> list[Any]:
    if json_output:
        return [_drop_formatter_keys, structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [_drop_formatter_keys, structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]


def configure_logging(*, json_output: bool = False, level: str = "INFO") -> None:
    """Route structlog and stdlib records through one stderr handler.

    Args:
        json_output: Emit one JSON object per line instead of console text.
        level: Root log level name (DEBUG, INFO, WARNING, ERROR).
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ProcessorFormatter(processors=_render_chain(json_output), foreign_pre_chain=pre_chain))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Bound structlog logger for a module (pass __name__)."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
