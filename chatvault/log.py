"""Logging setup for the command line entry points."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: int | str = logging.WARNING, console: Console | None = None) -> None:
    """Route the ``chatvault`` logger through a rich handler on stderr."""
    logger = logging.getLogger("chatvault")
    logger.setLevel(level)

    if logger.handlers:
        logger.handlers.clear()

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
