#!/usr/bin/env python3
"""
CommitGuard CLI Helpers

Shared formatting utilities for consistent CLI output across commands:
colored status messages, logging setup, and progress spinners.
"""

import logging
from contextlib import contextmanager

from rich.console import Console

# Human-facing output. Structured reports bypass this and go straight to stdout.
console = Console()

# Status chatter for structured modes, kept off stdout.
err_console = Console(stderr=True)


def print_success(message: str, out: Console = console) -> None:
    """Print a success message with green checkmark."""
    out.print(f"[green]✓[/green] {message}")


def print_warning(message: str, out: Console = console) -> None:
    """Print a warning message with yellow triangle."""
    out.print(f"[yellow]⚠[/yellow]  {message}")


def print_error(message: str, fix_hint: str = "", out: Console = err_console) -> None:
    """Print an error message with red X and optional fix hint."""
    out.print(f"[red]✗[/red] ERROR: {message}")
    if fix_hint:
        out.print(f"  [white]Hint: {fix_hint}[/white]")


def configure_logging(verbosity: int) -> None:
    """WARNING by default, INFO with -v, DEBUG with -vv. Always on stderr."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


@contextmanager
def spinner(message: str, out: Console = console):
    """
    Context manager for showing a Rich spinner during long operations.

    Usage:
        with spinner("Fetching collaborators"):
            do_slow_work()
    """
    with out.status(f"[bold cyan]{message}...", spinner="dots"):
        yield
