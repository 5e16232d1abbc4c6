"""Tracing and structured logging for the plugin database generator.

Example:
    >>> from jetbrains_plugins.telemetry import configure_logging, create_span
    >>> configure_logging(log_level="DEBUG", json_output=False)
    >>> with create_span("generate", attributes={"ide.count": 12}):
    ...     pass
"""

from __future__ import annotations

from jetbrains_plugins.telemetry.logging import add_trace_context, configure_logging
from jetbrains_plugins.telemetry.tracing import create_span, get_tracer

__all__ = [
    "add_trace_context",
    "configure_logging",
    "create_span",
    "get_tracer",
]
