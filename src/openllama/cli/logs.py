"""Logging setup for the command-line interface."""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(level: str = "warning", console: Console | None = None) -> None:
    """Route package logs through a Rich handler.

    Args:
        level: 'debug', 'info', 'warning' or 'error' (unknown names fall
            back to 'warning')
        console: Console to log to (stderr by default)
    """
    root = logging.getLogger()
    if any(isinstance(h, RichHandler) for h in root.handlers):
        root.setLevel(LOG_LEVELS.get(level.lower(), logging.WARNING))
        return

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    logging.basicConfig(
        level=LOG_LEVELS.get(level.lower(), logging.WARNING),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[handler],
    )
    # Per-request lines from httpx are noise at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
