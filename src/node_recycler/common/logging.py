"""Logging for the node recycler.

Uses Python's logging module with rich formatting for console output.
Log lines are the audit trail for admission rejections, release
decisions and decommission outcomes, so every component logs through
a named logger obtained from ``get_logger``. The trail can also be kept
in a plain-text file with ``log_file``.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.errors import MarkupError
from rich.logging import RichHandler
from rich.text import Text


_initialized = False
_console = Console(stderr=True)

AUDIT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class PlainTextFormatter(logging.Formatter):
    """Formatter that strips rich markup, for log files."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        try:
            return Text.from_markup(line).plain
        except MarkupError:
            return line


def build_file_handler(path: str, level: str = "INFO") -> logging.Handler:
    """Create an append-mode handler writing markup-free audit lines."""
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler.setFormatter(PlainTextFormatter(AUDIT_FORMAT))
    return handler


def setup_logging(
    level: str = "INFO",
    component: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """Initialize logging with rich console output.

    Should be called once at startup. Subsequent calls are no-ops.

    Args:
        level: Log level string ("DEBUG", "INFO", "WARNING", "ERROR").
        component: Optional component name shown before every message.
        log_file: Optional path that also receives every log line,
            without console markup.
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = RichHandler(
        console=_console,
        show_time=True,
        show_path=False,
        markup=True,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )
    handler.setLevel(log_level)

    fmt = "%(message)s"
    if component:
        fmt = f"[bold cyan]\\[{component}][/] %(message)s"

    handler.setFormatter(logging.Formatter(fmt))

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()
    root.addHandler(handler)
    if log_file:
        root.addHandler(build_file_handler(log_file, level))


def get_logger(name: str) -> logging.Logger:
    """Get a named logger, typically for ``__name__`` of the caller."""
    return logging.getLogger(name)
