"""Logging setup: stdlib logging rendered through rich."""

import logging

from rich.logging import RichHandler


def setup_logging(level: str = "INFO") -> None:
    """Route ``nwlab.*`` loggers through a RichHandler at ``level``."""
    handler = RichHandler(show_path=False, rich_tracebacks=True, markup=False)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root = logging.getLogger("nwlab")
    root.handlers[:] = [handler]
    root.setLevel(level)
    root.propagate = False
