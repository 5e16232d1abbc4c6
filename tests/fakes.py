"""Test doubles for the marketplace, download host, and hashing tool.

Imported by conftest.py and by test modules (``tests/`` is on the pytest
pythonpath).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

import httpx

from jetbrains_plugins.schemas import DEFAULT_DOWNLOADS_PREFIX

EMPTY_SHA256_NIX32 = "0mdqa9w1p6cmli6976v4wi0sw9r4p5prkj7lzfd1877wk11c9c73"
"""SHA-256 of the empty string in Nix base-32."""

EMPTY_SHA256_BASE64 = "47DEQpj8HBSa+/TImW+5JCeuQeRkm5NMpJWZG3hSuFU="
"""The same digest in standard base64."""


def details_xml(*releases: tuple[str, str | None, str | None]) -> str:
    """Build a plugin-details document from (version, since, until) triples."""
    plugins = []
    for version, since, until in releases:
        attrs = ""
        if since is not None:
            attrs += f' since-build="{since}"'
        if until is not None:
            attrs += f' until-build="{until}"'
        plugins.append(
            f"<idea-plugin><name>p</name><version>{version}</version>"
            f"<idea-version{attrs}/></idea-plugin>"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f"<plugin-repository><category name=\"Misc\">{''.join(plugins)}</category>"
        "</plugin-repository>"
    )


EMPTY_DETAILS_XML = '<?xml version="1.0" encoding="UTF-8"?><plugin-repository/>'


class FakeHasher:
    """Stand-in for the external hashing tool; records every invocation."""

    def __init__(self, digest: str = EMPTY_SHA256_NIX32) -> None:
        self.digest = digest
        self.calls: list[dict[str, object]] = []
        self._lock = threading.Lock()

    def prefetch(
        self,
        name: str,
        url: str,
        *,
        unpack: bool = False,
        executable: bool = False,
        timeout: float | None = None,
    ) -> str:
        with self._lock:
            self.calls.append(
                {"name": name, "url": url, "unpack": unpack, "executable": executable}
            )
        return self.digest


@dataclass
class ScriptedMarketplace:
    """Scripted marketplace and download host for ``httpx.MockTransport``.

    Attributes:
        details: plugin id -> details XML, or an int status to answer with.
        downloads: (plugin id, version) -> artifact path under the downloads
            prefix, or an int status to answer the probe with.
        documents: absolute URL -> body for feeds and indices.
        requests: Every request seen, in order.
    """

    details: dict[str, str | int] = field(default_factory=dict)
    downloads: dict[tuple[str, str], str | int] = field(default_factory=dict)
    documents: dict[str, str | bytes] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def count(self, method: str, path: str) -> int:
        """Count requests with the given method and URL path."""
        with self._lock:
            return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)

        url = str(request.url)
        if url.startswith(DEFAULT_DOWNLOADS_PREFIX) and request.method == "HEAD":
            return httpx.Response(200)

        path = request.url.path
        params = request.url.params
        if path == "/plugins/list":
            answer = self.details.get(params["pluginId"], EMPTY_DETAILS_XML)
            if isinstance(answer, int):
                return httpx.Response(answer)
            return httpx.Response(200, text=answer)

        if path == "/plugin/download":
            answer = self.downloads.get((params["pluginId"], params["version"]), 404)
            if isinstance(answer, int):
                return httpx.Response(answer)
            location = f"{DEFAULT_DOWNLOADS_PREFIX}{answer}?updateId=1&pluginId=1"
            return httpx.Response(302, headers={"Location": location})

        document = self.documents.get(url)
        if document is None:
            return httpx.Response(404)
        return httpx.Response(200, content=document)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


__all__ = [
    "EMPTY_DETAILS_XML",
    "EMPTY_SHA256_BASE64",
    "EMPTY_SHA256_NIX32",
    "FakeHasher",
    "ScriptedMarketplace",
    "details_xml",
]
