"""Logging setup for the command-line entry point."""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str = "WARNING", console: Optional[Console] = None) -> None:
    """Route ``goaltrack`` log records through rich on stderr.

    Library modules only create loggers; handlers are installed here so
    importing the package never configures logging on its own.
    """
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    logger = logging.getLogger("goaltrack")
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False
