"""OpenTelemetry span helpers.

Spans are created against the globally configured tracer provider. With no
provider installed (the default for the CLI) the OpenTelemetry API hands out
non-recording spans, so instrumentation costs nothing.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode, Tracer

_TRACER_NAME = "jetbrains_plugins"


def get_tracer() -> Tracer:
    """Get the tracer used for generator spans."""
    return trace.get_tracer(_TRACER_NAME)


@contextmanager
def create_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[Span, None, None]:
    """Create a span as a context manager.

    Exceptions escaping the block mark the span as errored and propagate.

    Args:
        name: The name for the span.
        attributes: Optional dictionary of attributes to set on the span.

    Yields:
        The created span for additional attribute setting.

    Examples:
        >>> with create_span("plugin.process", attributes={"plugin.id": "foo"}) as span:
        ...     span.set_attribute("plugin.releases", 3)
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(
        name,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.set_attribute("exception.type", type(e).__name__)
            span.set_attribute("exception.message", str(e))
            raise


__all__ = ["create_span", "get_tracer"]
