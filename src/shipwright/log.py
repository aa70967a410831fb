"""Logging setup for the shipwright CLI.

Library modules only create ``logging.getLogger(__name__)`` loggers; handlers
are installed here, once, by the command line entry point.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class EventFormatter(logging.Formatter):
    """Plain formatter that appends the structured event name when present."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        event = getattr(record, "event", None)
        if event:
            task_id = getattr(record, "task_id", None)
            suffix = f" [{event}" + (f" task={task_id}" if task_id else "") + "]"
            message += suffix
        return message


def setup_logging(level: str | int = "INFO", rich: bool = True, console: Console | None = None) -> None:
    """Configure the ``shipwright`` logger hierarchy.

    Args:
        level: Log level name or number.
        rich: Render through a rich console handler instead of plain text.
        console: Console for the rich handler, stderr if None.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger("shipwright")
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler: logging.Handler
    if rich:
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(EventFormatter(LOG_FORMAT))

    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False
