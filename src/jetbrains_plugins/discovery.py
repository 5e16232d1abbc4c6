"""Discovery of the IDE releases and candidate plugins to crawl.

Sources:
    - JetBrains ``updates.xml``: every product's release channels
    - Android Studio release list (JSON)
    - Plugin indices: JSON arrays of plugin ids

Only IDE releases whose version starts with one of the configured
release-series prefixes are kept; older ones are logged and ignored.

Example:
    >>> ides = collect_ides(client, settings)
    >>> plugin_ids = fetch_plugin_ids(client, settings.plugin_index_urls)
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Iterable

import structlog
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from jetbrains_plugins.errors import MetadataParseError
from jetbrains_plugins.ides import IdeIdentity, IdeProduct, is_allowed_version
from jetbrains_plugins.marketplace import MarketplaceClient
from jetbrains_plugins.schemas import DEFAULT_VERSION_PREFIXES, GeneratorSettings

logger = structlog.get_logger(__name__)

RELEASE_CHANNEL_SUFFIX = "RELEASE-licensing-RELEASE"
"""Channel id suffix of stable JetBrains releases."""

ANDROID_STUDIO_BUILD_PREFIX = "AI-"

_PLUGIN_IDS_ADAPTER = TypeAdapter(list[str])


class AndroidStudioRelease(BaseModel):
    """One entry of the Android Studio release list."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    version: str
    build: str
    platform_build: str = Field(..., alias="platformBuild")
    channel: str


class _AndroidStudioContent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    item: list[AndroidStudioRelease]


class AndroidStudioFeed(BaseModel):
    """Top level of the Android Studio release list."""

    model_config = ConfigDict(extra="ignore")

    content: _AndroidStudioContent


def parse_jetbrains_releases(
    xml_text: str,
    prefixes: Iterable[str] = DEFAULT_VERSION_PREFIXES,
    *,
    source: str = "updates.xml",
) -> list[IdeIdentity]:
    """Extract stable IDE releases from JetBrains ``updates.xml``.

    A product element lists one or more product codes. The first element to
    carry a recognized code claims that product; later elements with the
    same code are ignored. The build number is ``fullNumber`` when present,
    else ``number``.

    Raises:
        MetadataParseError: If the XML is malformed or a build lacks its
            version or number.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise MetadataParseError(source, str(e)) from e

    prefixes = list(prefixes)
    claimed: set[IdeProduct] = set()
    releases: list[IdeIdentity] = []

    for product_elem in root.findall("product"):
        for code_elem in product_elem.findall("code"):
            product = IdeProduct.from_code((code_elem.text or "").strip())
            if product is None or product in claimed:
                continue
            claimed.add(product)

            for channel in product_elem.findall("channel"):
                if not channel.get("id", "").endswith(RELEASE_CHANNEL_SUFFIX):
                    continue
                for build in channel.findall("build"):
                    version = build.get("version")
                    number = build.get("fullNumber") or build.get("number")
                    if not version or not number:
                        raise MetadataParseError(
                            source, f"incomplete build in {product.short_key}"
                        )
                    if not is_allowed_version(version, prefixes):
                        logger.warning(
                            "ide_release_too_old", ide=product.short_key, version=version
                        )
                        continue
                    releases.append(IdeIdentity(product, version, number))
    return releases


def parse_android_studio_releases(
    payload: object,
    prefixes: Iterable[str] = DEFAULT_VERSION_PREFIXES,
    *,
    source: str = "android-studio-releases",
) -> list[IdeIdentity]:
    """Extract Android Studio releases from the decoded release list.

    All channels are accepted. The build number is the IntelliJ platform
    build the release is based on.

    Raises:
        MetadataParseError: If the payload does not match the expected shape
            or an item's build is not an Android Studio build.
    """
    try:
        feed = AndroidStudioFeed.model_validate(payload)
    except ValidationError as e:
        raise MetadataParseError(source, str(e)) from e

    prefixes = list(prefixes)
    product = IdeProduct.ANDROID_STUDIO
    releases: list[IdeIdentity] = []
    for item in feed.content.item:
        if not item.build.startswith(ANDROID_STUDIO_BUILD_PREFIX):
            raise MetadataParseError(
                source,
                f"unexpected product code: {item.build} does not start with "
                f"{ANDROID_STUDIO_BUILD_PREFIX}",
            )
        if not is_allowed_version(item.version, prefixes):
            logger.warning("ide_release_too_old", ide=product.short_key, version=item.version)
            continue
        releases.append(IdeIdentity(product, item.version, item.platform_build))
    return releases


def collect_ides(client: MarketplaceClient, settings: GeneratorSettings) -> list[IdeIdentity]:
    """Fetch both release feeds and return the IDEs to generate for.

    Raises:
        UpstreamError: If a feed cannot be fetched.
        MetadataParseError: If a feed cannot be parsed.
    """
    jetbrains = parse_jetbrains_releases(
        client.fetch_text(settings.jetbrains_releases_url),
        settings.version_prefixes,
        source=settings.jetbrains_releases_url,
    )
    android_studio = parse_android_studio_releases(
        client.fetch_json(settings.android_studio_releases_url),
        settings.version_prefixes,
        source=settings.android_studio_releases_url,
    )
    logger.info(
        "ides_collected",
        jetbrains=len(jetbrains),
        android_studio=len(android_studio),
    )
    return jetbrains + android_studio


def fetch_plugin_ids(client: MarketplaceClient, index_urls: Iterable[str]) -> list[str]:
    """Fetch and concatenate the candidate plugin indices in order.

    Raises:
        UpstreamError: If an index cannot be fetched.
        MetadataParseError: If an index is not a JSON array of strings.
    """
    plugin_ids: list[str] = []
    for url in index_urls:
        try:
            ids = _PLUGIN_IDS_ADAPTER.validate_python(client.fetch_json(url))
        except ValidationError as e:
            raise MetadataParseError(url, str(e)) from e
        logger.info("plugin_index_fetched", url=url, plugins=len(ids))
        plugin_ids.extend(ids)
    return plugin_ids


__all__ = [
    "AndroidStudioFeed",
    "AndroidStudioRelease",
    "collect_ides",
    "fetch_plugin_ids",
    "parse_android_studio_releases",
    "parse_jetbrains_releases",
]
