"""Pydantic models for plugin metadata, database entries, and settings.

Models:
    PluginRelease: One published release of a plugin with its build bounds
    PluginEntry: Content address (relative path + hash) of a plugin artifact
    RetryConfig: Backoff policy for per-plugin tasks
    GeneratorSettings: Run configuration, loaded from ``JBPLUGINS_*`` env vars

Example:
    >>> entry = PluginEntry(path="files/1/2/plugin.zip", hash="q83vEjRWeJA=")
    >>> entry.model_dump(by_alias=True)
    {'p': 'files/1/2/plugin.zip', 'h': 'q83vEjRWeJA='}
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MARKETPLACE_URL = "https://plugins.jetbrains.com"
DEFAULT_DOWNLOADS_PREFIX = "https://downloads.marketplace.jetbrains.com/"
DEFAULT_VERSION_PREFIXES = ["2027.", "2026.", "2025.", "2024.3."]


class PluginRelease(BaseModel):
    """A single plugin release as listed by the marketplace.

    Examples:
        >>> release = PluginRelease(version="1.2.0", since_build="241", until_build="242.*")
        >>> release.until_build
        '242.*'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: str = Field(..., min_length=1, description="Plugin version string")
    since_build: str | None = Field(
        default=None,
        description="Lowest compatible IDE build, may end in '.*'",
    )
    until_build: str | None = Field(
        default=None,
        description="Highest compatible IDE build, may end in '.*'",
    )


class PluginEntry(BaseModel):
    """Content address of one plugin artifact.

    Persisted as ``{"p": path, "h": hash}``. Entries are immutable: a given
    (plugin, version) must always resolve to the same entry.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    path: str = Field(
        ...,
        alias="p",
        description="Download path relative to the downloads prefix, without query",
    )
    hash: str = Field(
        ...,
        alias="h",
        description="Base64 SHA-256 of the (unpacked) artifact contents",
    )


class RetryConfig(BaseModel):
    """Retry policy configuration for plugin tasks.

    Uses exponential backoff; the first retry waits ``initial_delay_ms``.

    Examples:
        >>> config = RetryConfig()
        >>> config.max_attempts, config.initial_delay_ms
        (4, 250)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(
        default=4,
        ge=1,
        le=10,
        description="Maximum number of attempts, including the first one",
    )
    initial_delay_ms: int = Field(
        default=250,
        ge=0,
        description="Delay before the first retry in milliseconds",
    )
    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        le=5.0,
        description="Multiplier for exponential backoff",
    )
    max_delay_ms: int = Field(
        default=30000,
        ge=0,
        description="Maximum delay cap in milliseconds",
    )
    jitter: bool = Field(
        default=False,
        description="Add random jitter to delays",
    )


class GeneratorSettings(BaseSettings):
    """Configuration for a generator run.

    Resolved once at startup and passed explicitly to the crawler and the
    content-hash resolver.

    Environment Variables:
        JBPLUGINS_MAX_WORKERS: Concurrent plugin tasks (default 16)
        JBPLUGINS_TASK_TIMEOUT_SECONDS: Deadline per plugin attempt
        JBPLUGINS_REQUEST_TIMEOUT_SECONDS: Timeout per HTTP request
        JBPLUGINS_TOOL_TIMEOUT_SECONDS: Timeout for the hashing subprocess
        JBPLUGINS_RETRY__MAX_ATTEMPTS: Attempts per plugin task
        JBPLUGINS_MARKETPLACE_URL: Marketplace base URL
    """

    model_config = SettingsConfigDict(
        env_prefix="JBPLUGINS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    max_workers: int = Field(
        default=16,
        ge=1,
        le=64,
        description="Maximum number of plugin tasks running at once",
    )
    task_timeout_seconds: float = Field(
        default=1200.0,
        gt=0,
        description="Deadline for one attempt of a plugin task",
    )
    request_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Timeout for a single HTTP request",
    )
    tool_timeout_seconds: float = Field(
        default=1200.0,
        gt=0,
        description="Timeout for the external hashing tool",
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)

    marketplace_url: str = Field(
        default=DEFAULT_MARKETPLACE_URL,
        description="Plugin marketplace base URL (details and download endpoints)",
    )
    downloads_prefix: str = Field(
        default=DEFAULT_DOWNLOADS_PREFIX,
        description="Prefix stripped from resolved download URLs",
    )
    plugin_index_urls: list[str] = Field(
        default_factory=lambda: [
            f"{DEFAULT_DOWNLOADS_PREFIX}files/pluginsXMLIds.json",
            f"{DEFAULT_DOWNLOADS_PREFIX}files/jbPluginsXMLIds.json",
        ],
        description="JSON indices listing candidate plugin ids",
    )
    jetbrains_releases_url: str = Field(
        default="https://www.jetbrains.com/updates/updates.xml",
        description="JetBrains IDE release feed (XML)",
    )
    android_studio_releases_url: str = Field(
        default="https://jb.gg/android-studio-releases-list.json",
        description="Android Studio release feed (JSON)",
    )
    version_prefixes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_VERSION_PREFIXES),
        description="Release-series prefixes of IDE versions to generate for",
    )


__all__ = [
    "DEFAULT_DOWNLOADS_PREFIX",
    "DEFAULT_MARKETPLACE_URL",
    "DEFAULT_VERSION_PREFIXES",
    "GeneratorSettings",
    "PluginEntry",
    "PluginRelease",
    "RetryConfig",
]
