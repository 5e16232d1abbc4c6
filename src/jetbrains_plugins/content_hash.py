"""Content-hash resolution for plugin releases.

Resolving a (plugin, version) to a PluginEntry consults, in order:

    1. the live database (entries from earlier runs or from this run)
    2. the negative-result cache (releases already probed as not-found)
    3. the download endpoint, followed by the external hashing tool

Only step 3 touches the network. A not-found probe is remembered for the
rest of the run and yields None; any other probe failure raises.

Artifact Handling:
    - ``*.jar``: hashed as a single executable file
    - anything else: unpacked, then the directory contents are hashed

Example:
    >>> resolver = ContentHashResolver(db, marketplace, prefetcher, NegativeResultCache())
    >>> resolver.resolve("org.rust.lang", "0.4.200")
    PluginEntry(path='files/8182/500000/intellij-rust-0.4.200.zip', hash='...')
"""

from __future__ import annotations

import re
import threading
from typing import TYPE_CHECKING

import structlog

from jetbrains_plugins.database import PluginDatabase, PluginKey
from jetbrains_plugins.errors import PrefetchError, UnexpectedDownloadUrlError
from jetbrains_plugins.prefetch import ArtifactHasher, nix32_to_base64
from jetbrains_plugins.schemas import DEFAULT_DOWNLOADS_PREFIX, PluginEntry

if TYPE_CHECKING:
    from jetbrains_plugins.marketplace import MarketplaceClient
    from jetbrains_plugins.resilience import Deadline

logger = structlog.get_logger(__name__)

JAR_SUFFIX = ".jar"

_NON_ALPHANUMERIC = re.compile(r"[^0-9A-Za-z]")


def store_name(plugin_id: str, version: str) -> str:
    """Return the name given to the hashed artifact in the store.

    Examples:
        >>> store_name("org.rust.lang", "0.4.200")
        'org-rust-lang-0-4-200-source'
    """
    return _NON_ALPHANUMERIC.sub("-", f"{plugin_id}-{version}-source")


def relative_path(url: str, prefix: str) -> str:
    """Strip the downloads prefix from an artifact URL.

    Raises:
        UnexpectedDownloadUrlError: If the URL does not start with ``prefix``.
    """
    if not url.startswith(prefix):
        raise UnexpectedDownloadUrlError(url, prefix)
    return url[len(prefix) :]


class NegativeResultCache:
    """Per-run set of plugin releases that have no downloadable artifact."""

    def __init__(self) -> None:
        self._keys: set[PluginKey] = set()
        self._lock = threading.Lock()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def add(self, key: PluginKey) -> None:
        """Record a release as not downloadable."""
        with self._lock:
            self._keys.add(key)


class ContentHashResolver:
    """Turns plugin releases into content addresses, hashing each at most once."""

    def __init__(
        self,
        db: PluginDatabase,
        marketplace: MarketplaceClient,
        hasher: ArtifactHasher,
        negative_cache: NegativeResultCache | None = None,
        *,
        downloads_prefix: str = DEFAULT_DOWNLOADS_PREFIX,
        tool_timeout: float = 1200.0,
    ) -> None:
        """Initialize ContentHashResolver.

        Args:
            db: Live database consulted before any network call.
            marketplace: Client used for the download probe.
            hasher: External hashing tool adapter.
            negative_cache: Shared not-found cache. A fresh one if None.
            downloads_prefix: Prefix stripped from artifact URLs.
            tool_timeout: Timeout for one hashing invocation in seconds.
        """
        self._db = db
        self._marketplace = marketplace
        self._hasher = hasher
        self._negative_cache = (
            negative_cache if negative_cache is not None else NegativeResultCache()
        )
        self._downloads_prefix = downloads_prefix
        self._tool_timeout = tool_timeout

    @property
    def negative_cache(self) -> NegativeResultCache:
        """Return the negative-result cache."""
        return self._negative_cache

    def resolve(
        self,
        plugin_id: str,
        version: str,
        *,
        deadline: Deadline | None = None,
    ) -> PluginEntry | None:
        """Resolve the content address of a plugin release.

        Args:
            plugin_id: Plugin identifier.
            version: Release version.
            deadline: Optional deadline bounding network and tool calls.

        Returns:
            The entry, or None if the release has no downloadable artifact.

        Raises:
            UpstreamError: If the probe fails with a status other than not-found.
            UnexpectedDownloadUrlError: If the artifact is served from an
                unknown location.
            PrefetchError: If hashing fails.
            TaskTimeoutError: If the deadline runs out.
        """
        key = PluginKey(plugin_id, version)

        existing = self._db.get_entry(key)
        if existing is not None:
            return existing

        if key in self._negative_cache:
            return None

        log = logger.bind(plugin_id=plugin_id, version=version)
        log.info("plugin_not_cached_hashing")

        url = self._marketplace.probe_download(plugin_id, version, deadline=deadline)
        if url is None:
            log.warning("plugin_release_not_available")
            self._negative_cache.add(key)
            return None

        path = relative_path(url, self._downloads_prefix)
        is_jar = path.endswith(JAR_SUFFIX)

        timeout = self._tool_timeout if deadline is None else deadline.bound(self._tool_timeout)
        digest = self._hasher.prefetch(
            store_name(plugin_id, version),
            url,
            unpack=not is_jar,
            executable=is_jar,
            timeout=timeout,
        )
        try:
            content_hash = nix32_to_base64(digest)
        except ValueError as e:
            raise PrefetchError(url, f"cannot decode digest {digest!r}: {e}") from e

        log.debug("plugin_release_hashed", path=path, hash=content_hash)
        return PluginEntry(path=path, hash=content_hash)


__all__ = [
    "ContentHashResolver",
    "NegativeResultCache",
    "relative_path",
    "store_name",
]
