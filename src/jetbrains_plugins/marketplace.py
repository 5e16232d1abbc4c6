"""HTTP client for the plugin marketplace and release feeds.

Endpoints:
    - Plugin details: ``GET {marketplace}/plugins/list?pluginId=<id>`` (XML)
    - Download probe: ``HEAD {marketplace}/plugin/download?pluginId=<id>&version=<v>``
      following redirects to the artifact's final location
    - Indices and feeds: plain ``GET`` returning JSON or XML

Every request is bounded by the configured request timeout, further clamped
to the remaining time of the caller's Deadline when one is given.

Example:
    >>> with httpx.Client() as http:
    ...     client = MarketplaceClient(http)
    ...     releases = client.fetch_plugin_releases("org.rust.lang")
    ...     url = client.probe_download("org.rust.lang", releases[0].version)
"""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit, urlunsplit

import httpx
import structlog

from jetbrains_plugins.errors import MetadataParseError, UpstreamError
from jetbrains_plugins.schemas import DEFAULT_MARKETPLACE_URL, PluginRelease

if TYPE_CHECKING:
    from jetbrains_plugins.resilience import Deadline

logger = structlog.get_logger(__name__)

DEFAULT_REQUEST_TIMEOUT = 600.0
"""Default timeout for a single request in seconds."""

HTTP_NOT_FOUND = 404


def strip_query(url: str) -> str:
    """Drop the query string and fragment from a URL.

    Download redirects carry tracking parameters that do not change the
    served file.

    Examples:
        >>> strip_query("https://host/files/a.zip?updateId=1&pluginId=2")
        'https://host/files/a.zip'
    """
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def parse_plugin_details(xml_text: str, source: str) -> list[PluginRelease] | None:
    """Parse a plugin-details XML document into releases.

    Args:
        xml_text: Body of the details endpoint.
        source: URL or label used in error messages.

    Returns:
        Releases in document order, or None when the document has no
        ``category`` element (the marketplace has no details for the plugin).

    Raises:
        MetadataParseError: If the XML is malformed or a release lacks its
            version or ``idea-version`` element.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise MetadataParseError(source, str(e)) from e

    category = root.find("category")
    if category is None:
        return None

    releases: list[PluginRelease] = []
    for plugin in category.findall("idea-plugin"):
        version = (plugin.findtext("version") or "").strip()
        if not version:
            raise MetadataParseError(source, "idea-plugin without version")
        idea_version = plugin.find("idea-version")
        if idea_version is None:
            raise MetadataParseError(source, f"release {version} has no idea-version")
        releases.append(
            PluginRelease(
                version=version,
                since_build=idea_version.get("since-build"),
                until_build=idea_version.get("until-build"),
            )
        )
    return releases


class MarketplaceClient:
    """Synchronous marketplace client over a shared httpx.Client.

    The httpx.Client is owned by the caller and is safe to share between
    worker threads.
    """

    def __init__(
        self,
        http: httpx.Client,
        *,
        marketplace_url: str = DEFAULT_MARKETPLACE_URL,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """Initialize MarketplaceClient.

        Args:
            http: Shared HTTP client.
            marketplace_url: Marketplace base URL without trailing slash.
            request_timeout: Timeout per request in seconds.
        """
        self._http = http
        self._base_url = marketplace_url.rstrip("/")
        self._request_timeout = request_timeout

    def _timeout(self, deadline: Deadline | None) -> float:
        if deadline is None:
            return self._request_timeout
        return deadline.bound(self._request_timeout)

    def _send(
        self,
        method: str,
        url: str,
        params: dict[str, str] | None,
        deadline: Deadline | None,
    ) -> httpx.Response:
        timeout = self._timeout(deadline)
        try:
            return self._http.request(
                method,
                url,
                params=params,
                follow_redirects=True,
                timeout=timeout,
            )
        except httpx.HTTPError as e:
            target = str(httpx.URL(url, params=params))
            raise UpstreamError(target, reason=f"{type(e).__name__}: {e}") from e

    def _get(
        self,
        url: str,
        params: dict[str, str] | None,
        deadline: Deadline | None,
    ) -> httpx.Response:
        response = self._send("GET", url, params, deadline)
        if not response.is_success:
            raise UpstreamError(str(response.request.url), response.status_code)
        return response

    def fetch_plugin_releases(
        self,
        plugin_id: str,
        *,
        deadline: Deadline | None = None,
    ) -> list[PluginRelease] | None:
        """Fetch the published releases of a plugin.

        Args:
            plugin_id: Identifier accepted by the details endpoint.
            deadline: Optional deadline bounding the request.

        Returns:
            Releases in marketplace order, or None if no details exist.

        Raises:
            UpstreamError: On a non-success status or a network failure.
            MetadataParseError: If the response is not valid details XML.
        """
        url = f"{self._base_url}/plugins/list"
        response = self._get(url, {"pluginId": plugin_id}, deadline)
        return parse_plugin_details(response.text, str(response.request.url))

    def probe_download(
        self,
        plugin_id: str,
        version: str,
        *,
        deadline: Deadline | None = None,
    ) -> str | None:
        """Resolve where a plugin release's artifact is served from.

        Issues a HEAD request to the download endpoint and follows redirects.

        Args:
            plugin_id: Plugin identifier.
            version: Release version.
            deadline: Optional deadline bounding the request.

        Returns:
            The final artifact URL with query and fragment removed, or None if
            the endpoint answered not-found.

        Raises:
            UpstreamError: On any other non-success status or a network failure.
        """
        response = self._send(
            "HEAD",
            f"{self._base_url}/plugin/download",
            {"pluginId": plugin_id, "version": version},
            deadline,
        )
        if response.status_code == HTTP_NOT_FOUND:
            return None
        if not response.is_success:
            raise UpstreamError(str(response.request.url), response.status_code)
        return strip_query(str(response.url))

    def fetch_json(self, url: str, *, deadline: Deadline | None = None) -> Any:
        """GET a URL and decode its JSON body.

        Raises:
            UpstreamError: On a non-success status or a network failure.
            MetadataParseError: If the body is not valid JSON.
        """
        response = self._get(url, None, deadline)
        try:
            return json.loads(response.content)
        except ValueError as e:
            raise MetadataParseError(url, str(e)) from e

    def fetch_text(self, url: str, *, deadline: Deadline | None = None) -> str:
        """GET a URL and return its decoded body.

        Raises:
            UpstreamError: On a non-success status or a network failure.
        """
        return self._get(url, None, deadline).text


__all__ = [
    "MarketplaceClient",
    "parse_plugin_details",
    "strip_query",
]
