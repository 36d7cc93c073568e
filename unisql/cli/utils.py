"""Shared CLI utilities for unisql."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.markup import escape

# Single console instance reused across CLI modules
console = Console()


def print_exception(message: str, error: Exception, verbose: bool = False) -> None:
    """Render a formatted exception message.

    Args:
        message: Friendly context message to display before the exception.
        error: Original exception instance.
        verbose: When True, render the full traceback for debugging.
    """
    console.print(f"[red]{escape(message)}: {escape(str(error))}[/red]")
    if verbose:
        import traceback

        console.print(f"[dim]{escape(traceback.format_exc())}[/dim]")


def format_value(value: Any) -> str:
    """Render one column value for a results table."""
    if value is None:
        return "[dim]NULL[/dim]"
    if isinstance(value, bytes):
        return f"[magenta]0x{value.hex()}[/magenta]"
    return escape(str(value))
