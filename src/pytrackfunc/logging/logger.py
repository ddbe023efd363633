"""Console logging for the pytrackfunc CLI."""

import logging

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "pytrackfunc"


def configure_logging(*, verbose: bool = False) -> logging.Logger:
    """Route package log records to stderr through rich. Safe to call repeatedly."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            show_time=False,
            show_path=False,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    return logger
