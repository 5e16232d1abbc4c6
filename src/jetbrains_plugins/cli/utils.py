"""CLI output helpers and exit codes.

Errors go to stderr as plain text; the process exit code tells CI which
kind of failure ended the run.

Example:
    from jetbrains_plugins.cli.utils import ExitCode, error_exit

    if not path.is_dir():
        error_exit("Output path is not a directory", exit_code=ExitCode.USAGE_ERROR)
"""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import TYPE_CHECKING

import click

from jetbrains_plugins.errors import GeneratorError

if TYPE_CHECKING:
    from typing import NoReturn


class ExitCode(IntEnum):
    """Exit codes for CLI commands.

    Values match the ``exit_code`` attributes of the generator errors.
    """

    SUCCESS = 0
    """Command completed successfully."""

    GENERAL_ERROR = 1
    """General error (catch-all for failures)."""

    USAGE_ERROR = 2
    """Invalid usage or configuration."""

    TOOL_NOT_FOUND = 3
    """A required external tool is not on PATH."""

    STATE_ERROR = 4
    """The persisted database could not be loaded or written."""

    NETWORK_ERROR = 5
    """Upstream service error, timeout, or unparseable response."""

    HASHING_ERROR = 6
    """The content-addressing tool failed."""


def error(message: str, **context: str | int | bool | None) -> None:
    """Print an error message to stderr.

    Example:
        error("Run failed", plugin="org.rust.lang")
        # Output: Error: Run failed (plugin=org.rust.lang)
    """
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
        full_message = f"Error: {message} ({context_str})"
    else:
        full_message = f"Error: {message}"

    click.echo(full_message, err=True)


def error_exit(
    message: str,
    exit_code: ExitCode = ExitCode.GENERAL_ERROR,
    **context: str | int | bool | None,
) -> NoReturn:
    """Print an error message to stderr and exit with a code.

    Raises:
        SystemExit: Always exits with the specified code.
    """
    error(message, **context)
    sys.exit(exit_code)


def exit_code_for(exc: GeneratorError) -> ExitCode:
    """Map a generator error to its exit code."""
    try:
        return ExitCode(exc.exit_code)
    except ValueError:
        return ExitCode.GENERAL_ERROR


def fail(exc: GeneratorError) -> NoReturn:
    """Report a generator error and exit with its code."""
    error_exit(str(exc), exit_code=exit_code_for(exc))


def success(message: str) -> None:
    """Print a success message to stdout."""
    click.echo(message)


__all__ = ["ExitCode", "error", "error_exit", "exit_code_for", "fail", "success"]
