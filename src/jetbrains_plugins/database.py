"""In-memory plugin database: content-address table plus per-IDE mappings.

The database has two parts:

    entries: PluginKey -> PluginEntry
        Every (plugin, version) ever hashed. Immutable once written: the
        first entry recorded for a key wins.
    per_ide: IdeIdentity -> {plugin id -> version}
        The release of each plugin chosen for each IDE.

Every version named in a per-IDE mapping has a matching entry; garbage
collection drops entries no IDE references.

All mutation goes through a single lock so that worker threads can insert
concurrently.

Example:
    >>> db = PluginDatabase()
    >>> db.insert(ide, "org.rust.lang", "1.0", PluginEntry(path="a.zip", hash="..."))
    >>> db.per_ide[ide]
    {'org.rust.lang': '1.0'}
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass

import structlog

from jetbrains_plugins.ides import IdeIdentity
from jetbrains_plugins.schemas import PluginEntry

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, order=True)
class PluginKey:
    """Identity of one plugin release.

    Flattened for persistence as ``<plugin id>/--/<version>``; the separator
    cannot occur in marketplace plugin ids.
    """

    plugin_id: str
    version: str

    SEPARATOR = "/--/"

    def flat(self) -> str:
        """Return the persisted form of the key."""
        return f"{self.plugin_id}{self.SEPARATOR}{self.version}"

    @classmethod
    def parse(cls, text: str) -> PluginKey:
        """Parse a persisted key.

        Raises:
            ValueError: If the separator is missing or either side is empty.
        """
        plugin_id, sep, version = text.partition(cls.SEPARATOR)
        if not sep or not plugin_id or not version:
            raise ValueError(f"Invalid plugin key: {text!r}")
        return cls(plugin_id, version)

    def __str__(self) -> str:
        return self.flat()


class PluginDatabase:
    """Thread-safe plugin database."""

    def __init__(self, entries: Mapping[PluginKey, PluginEntry] | None = None) -> None:
        self._lock = threading.Lock()
        self._entries: dict[PluginKey, PluginEntry] = dict(entries or {})
        self._per_ide: dict[IdeIdentity, dict[str, str]] = {}

    @property
    def entries(self) -> dict[PluginKey, PluginEntry]:
        """Return a snapshot of the content-address table."""
        with self._lock:
            return dict(self._entries)

    @property
    def per_ide(self) -> dict[IdeIdentity, dict[str, str]]:
        """Return a snapshot of the per-IDE mappings."""
        with self._lock:
            return {ide: dict(mapping) for ide, mapping in self._per_ide.items()}

    @property
    def ides(self) -> list[IdeIdentity]:
        """Return the IDEs that have a mapping."""
        with self._lock:
            return list(self._per_ide)

    def get_entry(self, key: PluginKey) -> PluginEntry | None:
        """Look up a previously recorded entry."""
        with self._lock:
            return self._entries.get(key)

    def set_ide_mapping(self, ide: IdeIdentity, mapping: Mapping[str, str]) -> None:
        """Replace the whole mapping of one IDE (used when loading)."""
        with self._lock:
            self._per_ide[ide] = dict(mapping)

    def insert(self, ide: IdeIdentity, plugin_id: str, version: str, entry: PluginEntry) -> None:
        """Record that ``ide`` uses ``version`` of ``plugin_id``.

        The entry is only stored if the key is new; an existing entry is
        never replaced. A differing entry for an existing key is logged.
        The IDE mapping is always updated.

        Args:
            ide: IDE the release was selected for.
            plugin_id: Plugin identifier.
            version: Selected release version.
            entry: Content address of the release.
        """
        key = PluginKey(plugin_id, version)
        with self._lock:
            existing = self._entries.setdefault(key, entry)
            self._per_ide.setdefault(ide, {})[plugin_id] = version
        if existing != entry:
            logger.warning(
                "plugin_entry_mismatch",
                key=key.flat(),
                kept_path=existing.path,
                kept_hash=existing.hash,
                new_path=entry.path,
                new_hash=entry.hash,
            )

    def garbage_collect(self) -> int:
        """Drop entries that no IDE mapping references.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            referenced = {
                PluginKey(plugin_id, version)
                for mapping in self._per_ide.values()
                for plugin_id, version in mapping.items()
            }
            before = len(self._entries)
            self._entries = {
                key: entry for key, entry in self._entries.items() if key in referenced
            }
            removed = before - len(self._entries)
        logger.info("plugin_entries_collected", removed=removed, kept=before - removed)
        return removed


__all__ = ["PluginDatabase", "PluginKey"]
