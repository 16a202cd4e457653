"""PugBot logging configuration.

Logging goes through loguru. Modules call ``get_logger(__name__)`` and log
with keyword fields, which loguru keeps in ``record["extra"]``::

    logger.info("notification sent", recipient_id=rid, type=ntype)

Positional arguments use ``{}`` placeholders. ``setup_logging`` is called once
by entrypoints; library code never configures sinks.
"""

from __future__ import annotations

import os
import sys
from typing import Optional

from loguru import logger as _root_logger

LOG_LEVEL_ENV = "PUGBOT_LOG_LEVEL"
DEFAULT_LEVEL = "INFO"

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[logger_name]}</cyan> | {message} | {extra}"
)


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the process-wide log sink.

    Args:
        level: Optional override for ``PUGBOT_LOG_LEVEL``.
    """
    if level:
        os.environ[LOG_LEVEL_ENV] = level

    resolved = os.getenv(LOG_LEVEL_ENV, DEFAULT_LEVEL).upper()
    _root_logger.remove()
    _root_logger.configure(extra={"logger_name": "pugbot"})
    _root_logger.add(sys.stderr, level=resolved, format=_FORMAT, backtrace=False, diagnose=False)


def get_logger(name: str):  # type: ignore[no-untyped-def]
    """Return a logger bound to ``name``."""
    return _root_logger.bind(logger_name=name)
