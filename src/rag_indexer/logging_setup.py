"""Logging configuration for the command-line entry point.

Modules never configure logging themselves; they take a ``logger``
argument (falling back to ``logging.getLogger(__name__)``) and the entry
point calls :func:`configure_logging` once per process.

Records from those standard-library loggers are rendered by structlog's
:class:`~structlog.stdlib.ProcessorFormatter`.  One shared processor chain
(level, logger name, ``extra=`` fields, timestamps) feeds either a
``ConsoleRenderer`` in development or a ``JSONRenderer`` everywhere else.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from rag_indexer.config import Settings

ROOT_LOGGER_NAME = "rag_indexer"


def build_formatter(json_output: bool) -> structlog.stdlib.ProcessorFormatter:
    """Formatter that renders stdlib records as JSON lines or console text."""
    shared_processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if json_output:
        renderers: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(default=str),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *renderers,
        ],
    )


def configure_logging(settings: Settings) -> logging.Logger:
    """Attach a handler to the package logger and return it.

    Development gets console rendering at DEBUG; every other environment
    gets JSON lines at INFO.  ``LOG_LEVEL`` overrides either default.
    """
    level = logging.DEBUG if settings.is_development else logging.INFO
    if settings.log_level:
        level = logging.getLevelName(settings.log_level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(build_formatter(json_output=not settings.is_development))

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger
