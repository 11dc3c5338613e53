"""
Logging configuration for history-scrubber.

Library modules log through ``logging.getLogger(__name__)`` and never
configure handlers themselves. The CLI calls setup_logging() once, which
routes the package's records through rich.
"""

from __future__ import annotations

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "history_scrubber"


def setup_logging(verbose: bool | None = None, console: Console | None = None) -> logging.Logger:
    """
    Configure logging for history-scrubber.

    Args:
        verbose: Enable debug level. Defaults to the HISTORY_SCRUBBER_DEBUG env var.
        console: Console to render records on (stderr by default)

    Returns:
        Root logger for history_scrubber
    """
    if verbose is None:
        verbose = os.environ.get("HISTORY_SCRUBBER_DEBUG", "").lower() in ("true", "1", "yes")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Clear existing handlers so repeated CLI invocations in one process don't stack
    logger.handlers.clear()

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=verbose,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.propagate = False

    return logger
