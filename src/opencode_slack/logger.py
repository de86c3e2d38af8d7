"""Structured logging for the bridge.

``logger`` is usable as soon as this module is imported: it starts at the
``LOG_LEVEL`` environment level so settings errors can be logged too.  Once
Settings load, the app calls ``configure_logging(settings.logging.level)``,
which re-applies the same pipeline at the configured level.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

_PROCESSORS: list[structlog.types.Processor] = [
    structlog.stdlib.filter_by_level,
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.dev.set_exc_info,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
]


def _resolve_level(level_name: str | None) -> int:
    name = (level_name or os.environ.get("LOG_LEVEL") or "INFO").upper()
    return logging.getLevelNamesMapping().get(name, logging.INFO)


def configure_logging(level_name: str | None = None) -> None:
    """Route structlog through stdlib logging on stderr at ``level_name``.

    Safe to call more than once; the root handler is installed only once and
    only the level changes on later calls.
    """
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
    root.setLevel(_resolve_level(level_name))

    if not structlog.is_configured():
        structlog.configure(
            processors=[*_PROCESSORS, structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
    sys.excepthook = _log_uncaught


def _log_uncaught(exc_type: type[BaseException], exc_value: BaseException, exc_tb: object) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
        return
    logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_tb))
    sys.exit(1)


configure_logging()
logger: structlog.stdlib.BoundLogger = structlog.get_logger()
