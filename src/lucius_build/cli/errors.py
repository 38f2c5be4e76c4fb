"""CLI error handling for lucius-build.

Wraps library exceptions into user-friendly messages with exit codes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

import click
from pydantic import ValidationError as PydanticValidationError
from rich.markup import escape

from lucius_build.cli import output
from lucius_build.errors import (
    CompilationFailure,
    EngineError,
    LuciusBuildError,
    PackagingFailure,
    SourceTreeError,
)

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails


# Exit codes
EXIT_SUCCESS = 0
EXIT_USER_ERROR = 1  # User error (validation, failed checks)
EXIT_SYSTEM_ERROR = 2  # System error (missing file, permissions, engine down)
EXIT_COMPILATION_FAILURE = 3
EXIT_PACKAGING_FAILURE = 4


class CLIError(click.ClickException):
    """CLI-specific exception with exit code support.

    Attributes:
        message: User-facing error message.
        exit_code: Exit code for the CLI (default: 1).
    """

    def __init__(self, message: str, exit_code: int = EXIT_USER_ERROR) -> None:
        super().__init__(message)
        self.exit_code = exit_code

    def show(self, file: object = None) -> None:
        """Display the error message using Rich formatting.

        Args:
            file: Output file (unused, for Click compatibility).
        """
        output.error(escape(self.format_message()))


def exit_code_for(err: LuciusBuildError) -> int:
    """Map a library error to the CLI exit code.

    Example:
        >>> exit_code_for(CompilationFailure("Compilation failed with exit code 101"))
        3
    """
    if isinstance(err, CompilationFailure):
        return EXIT_COMPILATION_FAILURE
    if isinstance(err, PackagingFailure):
        return EXIT_PACKAGING_FAILURE
    if isinstance(err, (EngineError, SourceTreeError)):
        return EXIT_SYSTEM_ERROR
    return EXIT_USER_ERROR


def format_pydantic_error(err: PydanticValidationError) -> str:
    """Format Pydantic validation error into user-friendly message.

    Args:
        err: Pydantic ValidationError instance.

    Returns:
        Formatted error message with field paths and issues.

    Example:
        >>> format_pydantic_error(err)
        "Validation failed:\\n  - build.workdir: Value error, workdir must be an absolute path..."
    """
    errors: list[ErrorDetails] = err.errors()
    lines = ["Validation failed:"]

    for e in errors:
        loc = ".".join(str(x) for x in e["loc"])
        msg = e["msg"]
        lines.append(f"  - {loc}: {msg}")

    return "\n".join(lines)


def handle_validation_error(err: PydanticValidationError, file_path: str) -> NoReturn:
    """Handle Pydantic validation errors with user-friendly messages.

    Raises:
        CLIError: Always raises with formatted error message.
    """
    formatted = format_pydantic_error(err)
    raise CLIError(f"Invalid configuration in {file_path}:\n{formatted}")


def handle_file_not_found(file_path: str) -> NoReturn:
    """Handle file not found errors with helpful suggestions.

    Raises:
        CLIError: Always raises with formatted error message.
    """
    raise CLIError(
        f"File not found: {file_path}\n\n"
        "Run 'lucius-build init' to create one, or use --file to specify a path.",
        exit_code=EXIT_SYSTEM_ERROR,
    )


def handle_permission_error(path: str, operation: str = "access") -> NoReturn:
    """Handle permission errors.

    Raises:
        CLIError: Always raises with formatted error message.
    """
    raise CLIError(
        f"Permission denied: Cannot {operation} {path}",
        exit_code=EXIT_SYSTEM_ERROR,
    )

