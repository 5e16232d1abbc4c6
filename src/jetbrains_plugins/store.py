"""Persistence of the plugin database to a directory.

Directory Layout:
    <output>/all_plugins.json         {"<id>/--/<version>": {"p": path, "h": hash}}
    <output>/ides/<key>-<version>.json  {"<id>": "<version>"}

Both kinds of file are pretty-printed with sorted keys so that successive
runs produce minimal diffs. Each file is written to a temporary sibling and
renamed into place, so a reader never sees a half-written file.

IDE identities reloaded from filenames carry no build number; a database
from ``load_full`` supports garbage collection but not compatibility
resolution.

Example:
    >>> db = load(Path("out"))            # entries only, for a generate run
    >>> full = load_full(Path("out"))     # entries + every IDE table, for cleanup
    >>> save(Path("out"), full)
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import structlog
from pydantic import TypeAdapter, ValidationError

from jetbrains_plugins.database import PluginDatabase, PluginKey
from jetbrains_plugins.errors import PersistedStateError
from jetbrains_plugins.ides import IdeIdentity
from jetbrains_plugins.schemas import PluginEntry

logger = structlog.get_logger(__name__)

ALL_PLUGINS_JSON = "all_plugins.json"
IDES_DIR = "ides"

_ENTRIES_ADAPTER = TypeAdapter(dict[str, PluginEntry])
_IDE_MAPPING_ADAPTER = TypeAdapter(dict[str, str])


def _read_entries(path: Path) -> dict[PluginKey, PluginEntry]:
    try:
        raw = _ENTRIES_ADAPTER.validate_json(path.read_bytes())
        return {PluginKey.parse(key): entry for key, entry in raw.items()}
    except (OSError, ValidationError, ValueError) as e:
        raise PersistedStateError(str(path), str(e)) from e


def _read_ide_mapping(path: Path) -> dict[str, str]:
    try:
        return _IDE_MAPPING_ADAPTER.validate_json(path.read_bytes())
    except (OSError, ValidationError) as e:
        raise PersistedStateError(str(path), str(e)) from e


def _write_json_atomic(path: Path, data: Any) -> None:
    # Callers order top-level keys; nested objects keep their field order
    temp_path = path.with_name(f".{path.name}.tmp")
    try:
        temp_path.write_text(json.dumps(data, indent=2) + "\n")
        os.replace(temp_path, path)
    except OSError as e:
        temp_path.unlink(missing_ok=True)
        raise PersistedStateError(str(path), f"write failed: {e}") from e


def load(output_dir: Path) -> PluginDatabase:
    """Load the entries table only.

    A missing ``all_plugins.json`` yields an empty database (first run).

    Raises:
        PersistedStateError: If the file exists but cannot be parsed.
    """
    path = output_dir / ALL_PLUGINS_JSON
    if not path.exists():
        logger.info("plugin_database_not_found", path=str(path))
        return PluginDatabase()

    entries = _read_entries(path)
    logger.info("plugin_database_loaded", path=str(path), entries=len(entries))
    return PluginDatabase(entries)


def load_full(output_dir: Path) -> PluginDatabase:
    """Load the entries table and every IDE table.

    Files in the IDE directory whose name is not a recognized IDE table are
    skipped with a warning; a recognized file that cannot be parsed is fatal.

    Raises:
        PersistedStateError: If the IDE directory is missing or any file is
            malformed.
    """
    db = load(output_dir)
    ides_dir = output_dir / IDES_DIR
    if not ides_dir.is_dir():
        raise PersistedStateError(str(ides_dir), "IDE directory not found")

    for path in sorted(ides_dir.iterdir()):
        ide = IdeIdentity.from_json_filename(path.name)
        if ide is None or not path.is_file():
            logger.warning("invalid_ide_file_skipped", path=str(path))
            continue
        db.set_ide_mapping(ide, _read_ide_mapping(path))

    logger.info("ide_tables_loaded", path=str(ides_dir), ides=len(db.ides))
    return db


def save(output_dir: Path, db: PluginDatabase) -> None:
    """Write the database to ``output_dir``.

    Writes ``all_plugins.json`` and one file per IDE that has a mapping.
    IDE files already on disk for other IDEs are left untouched.

    Raises:
        PersistedStateError: If a file cannot be written.
    """
    ides_dir = output_dir / IDES_DIR
    ides_dir.mkdir(parents=True, exist_ok=True)

    entries = {
        key.flat(): entry.model_dump(by_alias=True)
        for key, entry in sorted(db.entries.items(), key=lambda item: item[0].flat())
    }
    _write_json_atomic(output_dir / ALL_PLUGINS_JSON, entries)

    per_ide = db.per_ide
    for ide, mapping in per_ide.items():
        _write_json_atomic(ides_dir / ide.to_json_filename(), dict(sorted(mapping.items())))

    logger.info(
        "plugin_database_saved",
        path=str(output_dir),
        entries=len(entries),
        ides=len(per_ide),
    )


__all__ = ["ALL_PLUGINS_JSON", "IDES_DIR", "load", "load_full", "save"]
