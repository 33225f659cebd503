"""Structured logging singleton for codebox.

The logger is configured at import time, before any Settings are loaded, so
the initial level comes from the ``LOG_LEVEL`` environment variable.  The
CLI applies ``[logging] level`` from codebox.toml afterwards through
:func:`set_level`.  Everything goes to stderr: ``codebox run`` prints the
command's own output on stdout, and diagnostics must not mix into it.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog


def _setup_logging() -> structlog.stdlib.BoundLogger:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("codebox")


logger = _setup_logging()


def set_level(level_name: str) -> None:
    """Apply a level from config after startup (``[logging] level``)."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.getLogger("codebox").setLevel(level)
