"""The ``cleanup`` command: garbage-collect unreferenced plugin entries.

Loads the entries and every IDE table, drops entries no IDE table
references, and writes the database back. IDE tables are never
re-resolved: their build numbers are not stored.

Example:
    $ jetbrains-plugins cleanup -o ./data
"""

from __future__ import annotations

from pathlib import Path

import click
import structlog

from jetbrains_plugins import store
from jetbrains_plugins.cli.utils import fail, success
from jetbrains_plugins.errors import GeneratorError

logger = structlog.get_logger(__name__)


@click.command(
    name="cleanup",
    help="""\b
Remove plugin entries that no IDE table references.

Reads OUTPUT_PATH/all_plugins.json and every file in OUTPUT_PATH/ides,
then rewrites all_plugins.json with only the referenced entries.

Examples:
    $ jetbrains-plugins cleanup -o ./data
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option(
    "--output-path",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    required=True,
    help="Database directory (all_plugins.json and ides/).",
)
def cleanup_command(output_path: Path) -> None:
    """Remove plugin entries that no IDE table references."""
    try:
        db = store.load_full(output_path)
        removed = db.garbage_collect()
        store.save(output_path, db)
    except GeneratorError as e:
        fail(e)

    logger.info("cleanup_completed", removed=removed, remaining=len(db.entries))
    success(f"Removed {removed} unreferenced entries: {output_path}")


__all__ = ["cleanup_command"]
