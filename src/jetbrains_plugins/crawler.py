"""Crawl orchestration: one supervised task per candidate plugin.

Each plugin task:
    1. maps the plugin id to the id used for the details request, or skips
       plugins known to be broken
    2. fetches the plugin's releases (skipping plugins with no details)
    3. for each IDE, picks the first compatible release and resolves its
       content address, merging the result into the database

Tasks run on a fixed-size thread pool. Each attempt is bounded by a
deadline and retried with exponential backoff. The first task that fails
terminally aborts the crawl: queued tasks are cancelled, running ones stop
at their next checkpoint, and the error propagates to the caller, who must
not persist the partially updated database.

Example:
    >>> crawler = CrawlOrchestrator(db, marketplace, resolver, max_workers=16)
    >>> result = crawler.run(ides, plugin_ids)
    >>> result.mappings
    4211
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from jetbrains_plugins.errors import CrawlAbortedError
from jetbrains_plugins.resilience import Deadline, RetryPolicy, SupervisedTask
from jetbrains_plugins.schemas import RetryConfig
from jetbrains_plugins.telemetry import create_span
from jetbrains_plugins.version_compat import select_compatible_release

if TYPE_CHECKING:
    from jetbrains_plugins.content_hash import ContentHashResolver
    from jetbrains_plugins.database import PluginDatabase
    from jetbrains_plugins.ides import IdeIdentity
    from jetbrains_plugins.marketplace import MarketplaceClient

logger = structlog.get_logger(__name__)

DEFAULT_MAX_WORKERS = 16
DEFAULT_TASK_TIMEOUT = 1200.0

BROKEN_PLUGIN_ALIASES: dict[str, str | None] = {
    # The real id trips up the details endpoint
    "23.bytecode-disassembler": "bytecode-disassembler",
    # Invalid version numbers
    "com.valord577.mybatis-navigator": None,
    # Archive contains invalid file names
    "io.github.kings1990.FastRequest": None,
    "com.majera.intellij.codereview.gitlab": None,
}
"""Plugins queried under another id (str) or skipped entirely (None)."""


def details_id_for(plugin_id: str) -> str | None:
    """Return the id to query the details endpoint with, None to skip the plugin."""
    return BROKEN_PLUGIN_ALIASES.get(plugin_id, plugin_id)


@dataclass
class CrawlResult:
    """Outcome counts of a completed crawl.

    Attributes:
        plugins: Plugin tasks that completed.
        skipped: Plugins skipped as known-broken or without details.
        mappings: (IDE, plugin) mappings written.
    """

    plugins: int = 0
    skipped: int = 0
    mappings: int = 0

    def record(self, mapped: int | None) -> None:
        self.plugins += 1
        if mapped is None:
            self.skipped += 1
        else:
            self.mappings += mapped


class CrawlOrchestrator:
    """Runs plugin tasks over a bounded pool and merges results into the database."""

    def __init__(
        self,
        db: PluginDatabase,
        marketplace: MarketplaceClient,
        resolver: ContentHashResolver,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        task_timeout: float = DEFAULT_TASK_TIMEOUT,
        retry_config: RetryConfig | None = None,
    ) -> None:
        """Initialize CrawlOrchestrator.

        Args:
            db: Database receiving the results.
            marketplace: Client for the plugin details endpoint.
            resolver: Content-hash resolver sharing ``db``.
            max_workers: Maximum number of concurrently running plugin tasks.
            task_timeout: Deadline for one attempt of a plugin task in seconds.
            retry_config: Backoff policy for plugin tasks.
        """
        self._db = db
        self._marketplace = marketplace
        self._resolver = resolver
        self._max_workers = max_workers
        self._task_timeout = task_timeout
        self._policy = RetryPolicy(retry_config)

    def process_plugin(
        self,
        plugin_id: str,
        ides: Sequence[IdeIdentity],
        *,
        deadline: Deadline | None = None,
        abort: threading.Event | None = None,
    ) -> int | None:
        """Resolve one plugin for every IDE (a single attempt).

        Args:
            plugin_id: Candidate plugin id.
            ides: IDEs with build numbers.
            deadline: Deadline of this attempt.
            abort: Event set when the crawl is aborting.

        Returns:
            Number of IDE mappings written, or None if the plugin was skipped.

        Raises:
            CrawlAbortedError: If ``abort`` was set while processing.
            GeneratorError: On upstream, parsing, hashing, or timeout failures.
            ValueError: If an IDE lacks a build number or a bound is unparseable.
        """
        log = logger.bind(plugin_id=plugin_id)
        log.debug("plugin_processing_started")

        details_id = details_id_for(plugin_id)
        if details_id is None:
            log.warning("plugin_marked_broken_skipped")
            return None

        releases = self._marketplace.fetch_plugin_releases(details_id, deadline=deadline)
        if releases is None:
            log.warning("plugin_details_unavailable_skipped")
            return None

        mapped = 0
        for ide in ides:
            if abort is not None and abort.is_set():
                raise CrawlAbortedError(plugin_id)
            if deadline is not None:
                deadline.check()

            release = select_compatible_release(ide, releases)
            if release is None:
                log.debug("ide_not_supported", ide=str(ide))
                continue

            entry = self._resolver.resolve(plugin_id, release.version, deadline=deadline)
            if entry is not None:
                self._db.insert(ide, plugin_id, release.version, entry)
                mapped += 1
        return mapped

    def _supervise(
        self,
        plugin_id: str,
        ides: Sequence[IdeIdentity],
        abort: threading.Event,
    ) -> int | None:
        task = SupervisedTask(
            plugin_id,
            lambda deadline: self.process_plugin(
                plugin_id, ides, deadline=deadline, abort=abort
            ),
            timeout_seconds=self._task_timeout,
            policy=self._policy,
            abort=abort,
        )
        return task.run()

    def run(self, ides: Sequence[IdeIdentity], plugin_ids: Iterable[str]) -> CrawlResult:
        """Crawl every candidate plugin.

        Duplicate plugin ids are processed once.

        Args:
            ides: IDEs to resolve plugins for, each with a build number.
            plugin_ids: Candidate plugin ids.

        Returns:
            Counts for the completed crawl.

        Raises:
            TaskFailedError: If any plugin task failed terminally. The
                database may then hold a partial update and must not be saved.
        """
        candidates = list(dict.fromkeys(plugin_ids))
        result = CrawlResult()
        abort = threading.Event()
        log = logger.bind(
            ides=len(ides),
            plugins=len(candidates),
            max_workers=self._max_workers,
        )
        log.info("crawl_started")

        with create_span(
            "crawl.run",
            attributes={"crawl.ides": len(ides), "crawl.plugins": len(candidates)},
        ):
            executor = ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix="plugin-crawl",
            )
            try:
                futures: dict[Future[int | None], str] = {
                    executor.submit(self._supervise, plugin_id, ides, abort): plugin_id
                    for plugin_id in candidates
                }
                for future in as_completed(futures):
                    try:
                        result.record(future.result())
                    except Exception as e:
                        abort.set()
                        log.error(
                            "crawl_aborted",
                            plugin_id=futures[future],
                            error=str(e),
                            error_type=type(e).__name__,
                        )
                        raise
            finally:
                executor.shutdown(wait=True, cancel_futures=True)

        log.info(
            "crawl_completed",
            completed=result.plugins,
            skipped=result.skipped,
            mappings=result.mappings,
        )
        return result


__all__ = [
    "BROKEN_PLUGIN_ALIASES",
    "CrawlOrchestrator",
    "CrawlResult",
    "details_id_for",
]
