"""Structured logging singleton.

Reads ``LOG_LEVEL`` from the environment so logging works before the
settings are loaded; :func:`set_level` applies the configured level later.
When started by systemd (``JOURNAL_STREAM`` is set) the journal already
stamps every line, so timestamps and colors are left out.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog


def _level_from_name(level_name: str) -> int | None:
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else None


def _processors(under_journal: bool) -> list:
    processors: list = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.dev.set_exc_info,
    ]
    if not under_journal:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
    processors += [
        structlog.processors.StackInfoRenderer(),
        structlog.dev.ConsoleRenderer(colors=not under_journal and sys.stderr.isatty()),
    ]
    return processors


def _setup_logging() -> structlog.stdlib.BoundLogger:
    level = _level_from_name(os.environ.get("LOG_LEVEL", "INFO")) or logging.INFO
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)

    structlog.configure(
        processors=_processors(under_journal="JOURNAL_STREAM" in os.environ),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger("container_desktop_entries")


logger = _setup_logging()


def set_level(level_name: str) -> None:
    """Apply a level from the config file on top of ``LOG_LEVEL``."""
    level = _level_from_name(level_name)
    if level is None:
        logger.warning("Unknown log level, keeping current", level=level_name)
        return
    logging.getLogger().setLevel(level)


def _log_uncaught(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: object,
) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
        return
    logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_tb))
    sys.exit(1)


sys.excepthook = _log_uncaught
