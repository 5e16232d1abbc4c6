"""Generator for the JetBrains plugin compatibility database.

For each released IDE version, the database records the newest compatible
release of every marketplace plugin, plus a content address (download path
and hash) for every plugin release ever selected.

Example:
    >>> from jetbrains_plugins import store
    >>> db = store.load_full(Path("data"))
    >>> db.garbage_collect()
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
