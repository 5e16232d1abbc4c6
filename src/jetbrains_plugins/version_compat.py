"""Build-number comparison and plugin/IDE compatibility resolution.

Build numbers are dotted, mixed alphanumeric sequences such as
``251.23774.435`` or ``233.SNAPSHOT``. They are compared segment by segment:

    - numeric segments compare as integers ("10" > "9")
    - text segments compare case-insensitively as strings
    - a text segment sorts before any numeric segment
    - missing trailing segments count as ``0`` ("231" == "231.0")

Plugin releases declare optional ``since``/``until`` bounds which may end in
a ``.*`` wildcard. A wildcard in ``since`` is the lowest value for that
position ("231.*" -> "231.0"); in ``until`` it is the highest
("231.*" -> "231.99999999").

Compatibility Rules:
    - A release admits a build when since <= build <= until
    - An absent bound is unbounded on that side
    - Releases are scanned in the order given and the first admitting one wins

Example:
    >>> BuildNumber.parse("251.100") > BuildNumber.parse("251.99")
    True
    >>> release = PluginRelease(version="1.0", since_build="231.*", until_build="231.*")
    >>> release_admits(release, BuildNumber.parse("231.9000"))
    True
"""

from __future__ import annotations

import functools
import re
from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from jetbrains_plugins.ides import IdeIdentity
    from jetbrains_plugins.schemas import PluginRelease

WILDCARD_SUFFIX = ".*"
"""Wildcard suffix allowed on since/until bounds."""

WILDCARD_LOWER = ".0"
"""Replacement for a wildcard in a lower (since) bound."""

WILDCARD_UPPER = ".99999999"
"""Replacement for a wildcard in an upper (until) bound."""

_SEPARATORS = re.compile(r"[.\-_+]")


@functools.total_ordering
class BuildNumber:
    """A parsed build number supporting ordering comparisons.

    Attributes:
        raw: The original string.
        parts: Parsed segments, ``int`` for numeric and ``str`` for text.
    """

    __slots__ = ("raw", "parts")

    def __init__(self, raw: str, parts: tuple[int | str, ...]) -> None:
        self.raw = raw
        self.parts = parts

    @classmethod
    def parse(cls, raw: str) -> BuildNumber:
        """Parse a build number string.

        Args:
            raw: Build number such as ``251.23774.435``.

        Returns:
            Parsed BuildNumber.

        Raises:
            ValueError: If the string is empty or has an empty segment.
        """
        text = raw.strip()
        if not text:
            raise ValueError(f"Invalid build number: {raw!r}")
        parts: list[int | str] = []
        for segment in _SEPARATORS.split(text):
            if not segment:
                raise ValueError(f"Invalid build number: {raw!r} (empty segment)")
            parts.append(int(segment) if segment.isdigit() else segment.lower())
        return cls(raw, tuple(parts))

    def _compare(self, other: BuildNumber) -> int:
        length = max(len(self.parts), len(other.parts))
        for index in range(length):
            left = self.parts[index] if index < len(self.parts) else 0
            right = other.parts[index] if index < len(other.parts) else 0
            if left == right:
                continue
            if isinstance(left, int) and isinstance(right, int):
                return -1 if left < right else 1
            if isinstance(left, str) and isinstance(right, str):
                return -1 if left < right else 1
            # Text segments sort before numeric ones
            return -1 if isinstance(left, str) else 1
        return 0

    def _normalized(self) -> tuple[int | str, ...]:
        parts = list(self.parts)
        while parts and parts[-1] == 0:
            parts.pop()
        return tuple(parts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BuildNumber):
            return NotImplemented
        return self._compare(other) == 0

    def __lt__(self, other: BuildNumber) -> bool:
        if not isinstance(other, BuildNumber):
            return NotImplemented
        return self._compare(other) < 0

    def __hash__(self) -> int:
        return hash(self._normalized())

    def __repr__(self) -> str:
        return f"BuildNumber({self.raw!r})"

    def __str__(self) -> str:
        return self.raw


def lower_bound(since: str) -> BuildNumber:
    """Translate a ``since`` bound, mapping a wildcard to the lowest value."""
    return BuildNumber.parse(since.replace(WILDCARD_SUFFIX, WILDCARD_LOWER))


def upper_bound(until: str) -> BuildNumber:
    """Translate an ``until`` bound, mapping a wildcard to the highest value."""
    return BuildNumber.parse(until.replace(WILDCARD_SUFFIX, WILDCARD_UPPER))


def release_admits(release: PluginRelease, build: BuildNumber) -> bool:
    """Check whether a plugin release is installable on a build.

    Args:
        release: Plugin release with optional since/until bounds.
        build: IDE build number.

    Returns:
        True if the build lies within the inclusive bounds.
    """
    if release.since_build and build < lower_bound(release.since_build):
        return False
    if release.until_build and build > upper_bound(release.until_build):
        return False
    return True


def select_compatible_release(
    ide: IdeIdentity,
    releases: Iterable[PluginRelease],
) -> PluginRelease | None:
    """Pick the release to install on an IDE.

    Scans ``releases`` in the order given and returns the first one whose
    bounds admit the IDE's build number. The releases are never re-sorted:
    callers supply them in the marketplace's own most-preferred-first order.

    Args:
        ide: IDE identity carrying a build number.
        releases: Candidate releases, most preferred first.

    Returns:
        The first admitting release, or None if no release admits the IDE.

    Raises:
        ValueError: If the IDE has no build number (e.g. reloaded from disk)
            or a build number cannot be parsed.

    Examples:
        >>> from jetbrains_plugins.ides import IdeIdentity, IdeProduct
        >>> ide = IdeIdentity(IdeProduct.GOLAND, "2025.1", "251.100")
        >>> releases = [
        ...     PluginRelease(version="2.0", since_build="250.0"),
        ...     PluginRelease(version="1.0", since_build="200.0", until_build="250.*"),
        ... ]
        >>> select_compatible_release(ide, releases).version
        '2.0'
    """
    if not ide.has_build_number:
        raise ValueError(f"IDE {ide} has no build number; cannot resolve compatibility")
    build = BuildNumber.parse(ide.build_number)
    for release in releases:
        if release_admits(release, build):
            return release
    return None


__all__ = [
    "BuildNumber",
    "WILDCARD_LOWER",
    "WILDCARD_SUFFIX",
    "WILDCARD_UPPER",
    "lower_bound",
    "release_admits",
    "select_compatible_release",
    "upper_bound",
]
