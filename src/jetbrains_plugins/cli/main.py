"""Main entry point for the jetbrains-plugins CLI.

Commands:
    jetbrains-plugins generate: Crawl the marketplace and update the database
    jetbrains-plugins cleanup: Remove unreferenced plugin entries

Run configuration is read from ``JBPLUGINS_*`` environment variables.

Example:
    $ jetbrains-plugins --help
    $ jetbrains-plugins --log-level DEBUG generate -o ./data
"""

from __future__ import annotations

import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

import click
from pydantic import ValidationError

from jetbrains_plugins.cli.cleanup import cleanup_command
from jetbrains_plugins.cli.generate import generate_command
from jetbrains_plugins.cli.utils import ExitCode, error_exit
from jetbrains_plugins.schemas import GeneratorSettings
from jetbrains_plugins.telemetry import configure_logging

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _get_version() -> str:
    """Get the installed package version, or 'unknown' if not installed."""
    try:
        return get_version("jetbrains-plugins-generator")
    except PackageNotFoundError:
        return "unknown"


@click.group(
    name="jetbrains-plugins",
    help="Generate the JetBrains plugin compatibility database.",
    epilog="Use 'jetbrains-plugins <command> --help' for command-specific help.",
    context_settings={
        "help_option_names": ["-h", "--help"],
    },
)
@click.version_option(
    version=_get_version(),
    prog_name="jetbrains-plugins",
    message="%(prog)s %(version)s",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Minimum level of log events written to stderr.",
)
@click.option(
    "--json-logs",
    is_flag=True,
    default=False,
    help="Write log events as JSON lines.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str, json_logs: bool) -> None:
    """Root command group for the jetbrains-plugins CLI."""
    ctx.ensure_object(dict)
    configure_logging(log_level=log_level, json_output=json_logs)
    try:
        ctx.obj["settings"] = GeneratorSettings()
    except ValidationError as e:
        error_exit(f"Invalid configuration: {e}", exit_code=ExitCode.USAGE_ERROR)


cli.add_command(generate_command)
cli.add_command(cleanup_command)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the jetbrains-plugins CLI.

    Args:
        argv: Command-line arguments (uses sys.argv if None).
    """
    try:
        cli(args=argv, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
