"""Unit tests for IDE release and plugin index discovery."""

from __future__ import annotations

import json

import httpx
import pytest
from fakes import ScriptedMarketplace
from structlog.testing import capture_logs

from jetbrains_plugins.discovery import (
    collect_ides,
    fetch_plugin_ids,
    parse_android_studio_releases,
    parse_jetbrains_releases,
)
from jetbrains_plugins.errors import MetadataParseError, UpstreamError
from jetbrains_plugins.ides import IdeIdentity, IdeProduct
from jetbrains_plugins.marketplace import MarketplaceClient
from jetbrains_plugins.schemas import GeneratorSettings

STABLE = "IC-IU-RELEASE-licensing-RELEASE"

UPDATES_XML = f"""<?xml version="1.0" encoding="UTF-8"?>
<products>
  <product name="IntelliJ IDEA">
    <code>IC</code>
    <code>IU</code>
    <channel id="IC-IU-EAP-licensing-EAP" status="eap">
      <build number="252.100" version="2025.2 EAP"/>
    </channel>
    <channel id="{STABLE}" status="release">
      <build number="251.23774" fullNumber="251.23774.435" version="2025.1"/>
      <build number="243.100" version="2024.3.5"/>
      <build number="233.100" version="2023.3"/>
    </channel>
  </product>
  <product name="IntelliJ IDEA Ultimate (legacy)">
    <code>IU</code>
    <channel id="{STABLE}" status="release">
      <build number="999.1" version="2025.9"/>
    </channel>
  </product>
  <product name="GoLand">
    <code>GO</code>
    <channel id="GO-RELEASE-licensing-RELEASE" status="release">
      <build number="251.200" version="2025.1.1"/>
    </channel>
  </product>
</products>
"""


def _android_feed(*items: dict[str, str]) -> dict[str, object]:
    return {"content": {"item": list(items)}}


def _android_item(version: str, build: str, platform_build: str) -> dict[str, str]:
    return {
        "name": f"Android Studio {version}",
        "version": version,
        "build": build,
        "platformBuild": platform_build,
        "channel": "Release",
    }


class TestParseJetbrainsReleases:
    """Tests for parse_jetbrains_releases."""

    def test_stable_releases(self) -> None:
        """Test stable builds are extracted with their build numbers."""
        with capture_logs() as logs:
            ides = parse_jetbrains_releases(UPDATES_XML)

        assert ides == [
            IdeIdentity(IdeProduct.INTELLIJ_IDEA, "2025.1"),
            IdeIdentity(IdeProduct.INTELLIJ_IDEA, "2024.3.5"),
            IdeIdentity(IdeProduct.GOLAND, "2025.1.1"),
        ]
        assert [ide.build_number for ide in ides] == ["251.23774.435", "243.100", "251.200"]
        too_old = [log for log in logs if log["event"] == "ide_release_too_old"]
        assert [log["version"] for log in too_old] == ["2023.3"]

    def test_first_product_claims_code(self) -> None:
        """Test a later product repeating a code is ignored."""
        ides = parse_jetbrains_releases(UPDATES_XML)

        assert all(ide.version != "2025.9" for ide in ides)

    def test_eap_channels_ignored(self) -> None:
        """Test non-release channels contribute nothing."""
        ides = parse_jetbrains_releases(UPDATES_XML)

        assert all("EAP" not in ide.version for ide in ides)

    def test_custom_prefixes(self) -> None:
        """Test the release-series filter is configurable."""
        ides = parse_jetbrains_releases(UPDATES_XML, ["2023."])

        assert ides == [IdeIdentity(IdeProduct.INTELLIJ_IDEA, "2023.3")]

    @pytest.mark.parametrize(
        "xml",
        [
            "<products><product>",
            f'<products><product><code>IU</code><channel id="{STABLE}">'
            '<build number="251.1"/></channel></product></products>',
        ],
    )
    def test_malformed(self, xml: str) -> None:
        """Test malformed feeds raise MetadataParseError."""
        with pytest.raises(MetadataParseError):
            parse_jetbrains_releases(xml)


class TestParseAndroidStudioReleases:
    """Tests for parse_android_studio_releases."""

    def test_platform_build_is_used(self) -> None:
        """Test the platform build becomes the IDE's build number."""
        payload = _android_feed(
            _android_item("2025.1.1", "AI-251.25410.109.2511.13665796", "251.25410.109"),
            _android_item("2023.1.1", "AI-231.9392.1.2311.11076708", "231.9392.1"),
        )

        ides = parse_android_studio_releases(payload)

        assert ides == [IdeIdentity(IdeProduct.ANDROID_STUDIO, "2025.1.1")]
        assert ides[0].build_number == "251.25410.109"

    def test_foreign_build_rejected(self) -> None:
        """Test a build without the Android Studio prefix raises."""
        payload = _android_feed(_android_item("2025.1.1", "IU-251.1", "251.1"))

        with pytest.raises(MetadataParseError, match="unexpected product code"):
            parse_android_studio_releases(payload)

    def test_wrong_shape_rejected(self) -> None:
        """Test a payload without content.item raises."""
        with pytest.raises(MetadataParseError):
            parse_android_studio_releases({"items": []})


class TestRemoteDiscovery:
    """Tests for collect_ides and fetch_plugin_ids."""

    def test_collect_ides(
        self, marketplace_stub: ScriptedMarketplace, http_client: httpx.Client
    ) -> None:
        """Test both feeds are fetched and combined."""
        settings = GeneratorSettings()
        marketplace_stub.documents[settings.jetbrains_releases_url] = UPDATES_XML
        marketplace_stub.documents[settings.android_studio_releases_url] = json.dumps(
            _android_feed(_android_item("2025.1.1", "AI-251.1.2511", "251.1"))
        )

        ides = collect_ides(MarketplaceClient(http_client), settings)

        assert [ide.product for ide in ides] == [
            IdeProduct.INTELLIJ_IDEA,
            IdeProduct.INTELLIJ_IDEA,
            IdeProduct.GOLAND,
            IdeProduct.ANDROID_STUDIO,
        ]

    def test_fetch_plugin_ids_concatenates(
        self, marketplace_stub: ScriptedMarketplace, http_client: httpx.Client
    ) -> None:
        """Test indices are concatenated in order, duplicates kept."""
        marketplace_stub.documents["https://example.com/a.json"] = '["a", "b"]'
        marketplace_stub.documents["https://example.com/b.json"] = '["b", "c"]'

        plugin_ids = fetch_plugin_ids(
            MarketplaceClient(http_client),
            ["https://example.com/a.json", "https://example.com/b.json"],
        )

        assert plugin_ids == ["a", "b", "b", "c"]

    def test_fetch_plugin_ids_rejects_non_list(
        self, marketplace_stub: ScriptedMarketplace, http_client: httpx.Client
    ) -> None:
        """Test an index that is not a list of strings raises."""
        marketplace_stub.documents["https://example.com/a.json"] = '{"a": 1}'

        with pytest.raises(MetadataParseError):
            fetch_plugin_ids(MarketplaceClient(http_client), ["https://example.com/a.json"])

    def test_fetch_plugin_ids_missing_index(self, http_client: httpx.Client) -> None:
        """Test an unreachable index raises UpstreamError."""
        with pytest.raises(UpstreamError):
            fetch_plugin_ids(MarketplaceClient(http_client), ["https://example.com/none.json"])
