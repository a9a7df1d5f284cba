"""Shared CLI utilities for spanner-cli."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

# Single console instance reused across CLI modules
console = Console()
error_console = Console(stderr=True)


def print_exception(message: str, error: Exception, verbose: bool = False) -> None:
    """Render a formatted exception message on stderr.

    Args:
        message: Friendly context message to display before the exception.
        error: Original exception instance.
        verbose: When True, render the full traceback for debugging.
    """
    error_console.print(f"[red]{escape(message)}: {escape(str(error))}[/red]")
    if verbose:
        import traceback

        error_console.print(f"[dim]{escape(traceback.format_exc())}[/dim]")


def configure_logging(level: str = "WARNING") -> None:
    """Send spanner_cli log records to stderr through rich."""
    logger = logging.getLogger("spanner_cli")
    logger.setLevel(level.upper())
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=error_console, show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
