"""The ``generate`` command: crawl the marketplace and update the database.

A run:
    1. loads the existing entries from ``all_plugins.json`` (if any)
    2. collects IDE releases and candidate plugin ids
    3. crawls every plugin, hashing releases not seen before
    4. writes the database back, only if every plugin task succeeded

Example:
    $ jetbrains-plugins generate -o ./data
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import click
import httpx
import structlog

from jetbrains_plugins import __version__, store
from jetbrains_plugins.cli.utils import fail, success
from jetbrains_plugins.content_hash import ContentHashResolver, NegativeResultCache
from jetbrains_plugins.crawler import CrawlOrchestrator
from jetbrains_plugins.discovery import collect_ides, fetch_plugin_ids
from jetbrains_plugins.errors import GeneratorError
from jetbrains_plugins.marketplace import MarketplaceClient
from jetbrains_plugins.prefetch import ArtifactHasher, Prefetcher, ToolPaths
from jetbrains_plugins.schemas import GeneratorSettings
from jetbrains_plugins.telemetry import create_span

logger = structlog.get_logger(__name__)

USER_AGENT = f"jetbrains-plugins-generator/{__version__}"


@dataclass(frozen=True)
class GenerateSummary:
    """Counts reported at the end of a generate run."""

    ides: int
    plugins: int
    entries: int


def run_generate(
    output_path: Path,
    settings: GeneratorSettings,
    http: httpx.Client,
    hasher: ArtifactHasher,
) -> GenerateSummary:
    """Run a full generate cycle against ``output_path``.

    Args:
        output_path: Database directory.
        settings: Run configuration.
        http: HTTP client for every upstream request.
        hasher: Content-addressing tool adapter.

    Returns:
        Counts for the run summary.

    Raises:
        GeneratorError: On any unrecovered failure. Nothing is written then.
    """
    with create_span("generate", attributes={"output_path": str(output_path)}):
        db = store.load(output_path)

        marketplace = MarketplaceClient(
            http,
            marketplace_url=settings.marketplace_url,
            request_timeout=settings.request_timeout_seconds,
        )
        ides = collect_ides(marketplace, settings)
        plugin_ids = fetch_plugin_ids(marketplace, settings.plugin_index_urls)
        logger.info("generate_inputs_collected", ides=len(ides), plugins=len(plugin_ids))

        resolver = ContentHashResolver(
            db,
            marketplace,
            hasher,
            NegativeResultCache(),
            downloads_prefix=settings.downloads_prefix,
            tool_timeout=settings.tool_timeout_seconds,
        )
        crawler = CrawlOrchestrator(
            db,
            marketplace,
            resolver,
            max_workers=settings.max_workers,
            task_timeout=settings.task_timeout_seconds,
            retry_config=settings.retry,
        )
        crawler.run(ides, plugin_ids)

        store.save(output_path, db)

    summary = GenerateSummary(ides=len(ides), plugins=len(plugin_ids), entries=len(db.entries))
    logger.info(
        "generate_completed",
        ides=summary.ides,
        plugins=summary.plugins,
        entries=summary.entries,
    )
    return summary


@click.command(
    name="generate",
    help="""\b
Crawl the plugin marketplace and update the database.

Loads the existing entries from OUTPUT_PATH, resolves the newest
compatible release of every indexed plugin for every current IDE
release, hashes releases not seen before, and writes the database back.
Nothing is written if any plugin fails after retries.

Requires nix-prefetch-url and nix-store on PATH.

Examples:
    $ jetbrains-plugins generate -o ./data

    $ JBPLUGINS_MAX_WORKERS=4 jetbrains-plugins --json-logs generate -o ./data
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
@click.pass_context
def generate_command(ctx: click.Context, output_path: Path) -> None:
    """Crawl the plugin marketplace and update the database."""
    settings: GeneratorSettings = ctx.obj["settings"]
    try:
        hasher = Prefetcher(ToolPaths.discover(), timeout=settings.tool_timeout_seconds)
        with httpx.Client(headers={"User-Agent": USER_AGENT}) as http:
            summary = run_generate(output_path, settings, http, hasher)
    except GeneratorError as e:
        fail(e)

    success(
        f"Generated database for {summary.ides} IDEs from {summary.plugins} plugins "
        f"({summary.entries} entries): {output_path}"
    )


__all__ = ["GenerateSummary", "generate_command", "run_generate"]
