"""Loguru sinks for the aipipe CLI.

stdout carries model output only, so diagnostics go to stderr (and optionally
a rotated file). Library modules import ``logger`` from loguru and never add
sinks themselves.
"""

import os
import sys

from loguru import logger

CONSOLE_FORMAT = "<level>{level: <7}</level> <dim>{name}</dim> {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <7} | {name}:{line} | {message}"

# Overrides the level chosen by --verbose when set
LEVEL_ENV_VAR = "AIPIPE_LOG_LEVEL"


def setup_logging(level: str = "WARNING", log_file: str | None = None) -> str:
    """Replace loguru's default sink with aipipe's stderr (and file) sinks.

    Returns the effective level, after applying ``$AIPIPE_LOG_LEVEL``.
    """
    effective = os.environ.get(LEVEL_ENV_VAR, "").strip().upper() or level.upper()

    logger.remove()
    logger.add(sys.stderr, level=effective, format=CONSOLE_FORMAT, colorize=None)
    if log_file:
        logger.add(log_file, level=effective, format=FILE_FORMAT, rotation="5 MB", retention=3, encoding="utf-8")
    return effective
