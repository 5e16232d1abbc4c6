"""Command-line interface for the plugin database generator.

Commands:
    jetbrains-plugins generate -o DIR: crawl and update the database in DIR
    jetbrains-plugins cleanup -o DIR: drop entries no IDE table references
"""

from __future__ import annotations

from jetbrains_plugins.cli.main import cli, main

__all__ = ["cli", "main"]
