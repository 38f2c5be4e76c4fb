"""Console status lines for lucius-build commands.

Every command reports through one shared Rich console: a green check when
an image is built or a suite passes, a red cross for failures and CLI
errors, a yellow triangle for warnings. ``NO_COLOR`` and the global
``--no-color`` flag both turn styling off; structured output (``--format
json``) bypasses this module and writes to stdout directly.
"""

from __future__ import annotations

import os
from typing import Any

from rich.console import Console

# Rich reads NO_COLOR itself; it is also needed to drop forced terminal mode
_env_no_color = os.environ.get("NO_COLOR") is not None


def create_console(no_color: bool = False) -> Console:
    """Create the console used for status lines.

    Args:
        no_color: Disable styling even when attached to a terminal.

    Returns:
        Console writing to stdout.
    """
    plain = no_color or _env_no_color
    return Console(force_terminal=False if plain else None, no_color=plain)


console = create_console()


def success(message: str, **kwargs: Any) -> None:
    """Report a completed step.

    Example:
        >>> success("Built lucius-mcp-worker:latest")
        ✓ Built lucius-mcp-worker:latest
    """
    console.print(f"[green]✓[/green] {message}", **kwargs)


def error(message: str, **kwargs: Any) -> None:
    """Report a failure. Callers escape messages that may contain markup.

    Example:
        >>> error("Image verification failed")
        ✗ Image verification failed
    """
    console.print(f"[red]✗[/red] {message}", **kwargs)


def warning(message: str, **kwargs: Any) -> None:
    """Report something that does not stop the command, e.g. an overwritten lucius.yaml."""
    console.print(f"[yellow]⚠[/yellow] {message}", **kwargs)


def info(message: str, **kwargs: Any) -> None:
    console.print(message, **kwargs)


def set_no_color(no_color: bool) -> None:
    """Replace the shared console; called once from the root command."""
    global console
    console = create_console(no_color=no_color)
