"""
retell.logging - Centralized logging configuration.

All modules log through the "retell" logger. The CLI attaches a rich
handler bound to its console, so adapter warnings printed during a
practice run render above the live progress bar instead of through it.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

logger = logging.getLogger("retell")


def configure_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Configure logging for the retell package.

    Replaces any handler installed by an earlier call, so repeated CLI
    invocations in one process do not duplicate output.

    Args:
        verbose: If True, enable DEBUG level logging; otherwise WARNING level
        console: Console to log to (a stderr console if omitted)
    """
    level = logging.DEBUG if verbose else logging.WARNING
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=verbose,
        show_path=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    for existing in list(logger.handlers):
        if isinstance(existing, RichHandler):
            logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
