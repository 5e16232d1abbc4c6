"""Exception hierarchy for the plugin database generator.

All exceptions inherit from GeneratorError, the base exception class.

Exception Hierarchy:
    GeneratorError (base)
    ├── UpstreamError               # Upstream request failed (status or network)
    ├── MetadataParseError          # Upstream payload could not be parsed
    ├── PrefetchError               # External hashing tool failed or produced bad output
    ├── TaskTimeoutError            # A per-plugin attempt exceeded its deadline
    ├── UnexpectedDownloadUrlError  # Download resolved outside the known prefix
    ├── ToolNotFoundError           # External hashing tool is not on PATH
    ├── PersistedStateError         # Database directory is malformed or incomplete
    ├── CrawlAbortedError           # Run is aborting, task stopped early
    └── TaskFailedError             # A plugin task failed terminally

Exit Codes:
    0 - Success
    1 - General error (GeneratorError, CrawlAbortedError)
    3 - External tool missing (ToolNotFoundError)
    4 - Persisted state unusable (PersistedStateError)
    5 - Network/upstream error (UpstreamError, MetadataParseError, TaskTimeoutError)
    6 - Content hashing failed (PrefetchError)

The ``retryable`` class attribute decides whether the crawl retry envelope
re-runs a plugin task after the error.

Example:
    >>> from jetbrains_plugins.errors import UpstreamError
    >>> raise UpstreamError("https://plugins.jetbrains.com/plugins/list", 503)
    Traceback (most recent call last):
        ...
    UpstreamError: Upstream request failed: https://plugins.jetbrains.com/plugins/list (HTTP 503)
"""

from __future__ import annotations


class GeneratorError(Exception):
    """Base exception for all generator errors.

    Attributes:
        exit_code: CLI exit code for this error type (default: 1).
        retryable: Whether a plugin task failing with this error may be retried.
    """

    exit_code: int = 1
    retryable: bool = False


class UpstreamError(GeneratorError):
    """Raised when an upstream request fails.

    Covers a non-success status and a network-level failure (connection
    refused or dropped, read timeout). A not-found answer from the download
    probe is not an error and never raises this.

    Attributes:
        url: The requested URL.
        status_code: HTTP status code returned, None if no response arrived.
        reason: Transport error description when there is no status code.
        exit_code: CLI exit code (5).
    """

    exit_code: int = 5
    retryable: bool = True

    def __init__(
        self,
        url: str,
        status_code: int | None = None,
        *,
        reason: str | None = None,
    ) -> None:
        self.url = url
        self.status_code = status_code
        self.reason = reason
        if status_code is not None:
            detail = f"HTTP {status_code}"
        else:
            detail = reason or "no response"
        super().__init__(f"Upstream request failed: {url} ({detail})")


class MetadataParseError(GeneratorError):
    """Raised when an upstream payload cannot be parsed.

    Attributes:
        source: URL or description of the payload.
        reason: Parser error description.
        exit_code: CLI exit code (5).
    """

    exit_code: int = 5
    retryable: bool = True

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to parse {source}: {reason}")


class PrefetchError(GeneratorError):
    """Raised when the external content-addressing tool fails.

    Covers non-zero exit, malformed stdout, and a digest that cannot be
    decoded from the tool's native encoding.

    Attributes:
        url: Artifact URL being hashed.
        reason: Description of the failure.
        exit_code: CLI exit code (6).
    """

    exit_code: int = 6
    retryable: bool = True

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Prefetch failed for {url}: {reason}")


class TaskTimeoutError(GeneratorError, TimeoutError):
    """Raised when a per-plugin attempt runs past its deadline.

    Attributes:
        timeout_seconds: Deadline length that was exceeded.
        exit_code: CLI exit code (5).
    """

    exit_code: int = 5
    retryable: bool = True

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Task timed out after {timeout_seconds:g}s")


class UnexpectedDownloadUrlError(GeneratorError):
    """Raised when a download resolves to a URL outside the known prefix.

    Such a URL cannot be stored as a relative path, so the entry is refused.

    Attributes:
        url: The resolved download URL.
        prefix: The expected URL prefix.
        exit_code: CLI exit code (5).
    """

    exit_code: int = 5

    def __init__(self, url: str, prefix: str) -> None:
        self.url = url
        self.prefix = prefix
        super().__init__(f"Download URL {url} does not start with {prefix}")


class ToolNotFoundError(GeneratorError):
    """Raised when a required external tool is not on PATH.

    Attributes:
        tool: Executable name that was looked up.
        exit_code: CLI exit code (3).
    """

    exit_code: int = 3

    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"{tool} not found in PATH")


class PersistedStateError(GeneratorError):
    """Raised when the persisted database cannot be loaded.

    The run never proceeds with partial or guessed state.

    Attributes:
        path: File or directory that failed to load.
        reason: Description of the failure.
        exit_code: CLI exit code (4).
    """

    exit_code: int = 4

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid persisted state at {path}: {reason}")


class CrawlAbortedError(GeneratorError):
    """Raised inside a plugin task once another task failed terminally."""

    def __init__(self, plugin_id: str) -> None:
        self.plugin_id = plugin_id
        super().__init__(f"{plugin_id}: crawl aborted")


class TaskFailedError(GeneratorError):
    """Raised when a plugin task fails after exhausting its attempts.

    Attributes:
        plugin_id: Plugin whose task failed.
        attempts: Number of attempts made.
        cause: The last underlying exception.
        exit_code: Exit code of the cause when it is a GeneratorError, else 1.
    """

    def __init__(self, plugin_id: str, attempts: int, cause: BaseException) -> None:
        self.plugin_id = plugin_id
        self.attempts = attempts
        self.cause = cause
        if isinstance(cause, GeneratorError):
            self.exit_code = cause.exit_code
        super().__init__(f"{plugin_id}: failed after {attempts} attempt(s): {cause}")


__all__ = [
    "CrawlAbortedError",
    "GeneratorError",
    "MetadataParseError",
    "PersistedStateError",
    "PrefetchError",
    "TaskFailedError",
    "TaskTimeoutError",
    "ToolNotFoundError",
    "UnexpectedDownloadUrlError",
    "UpstreamError",
]
