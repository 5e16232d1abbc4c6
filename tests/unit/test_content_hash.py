"""Unit tests for content-hash resolution and the negative-result cache."""

from __future__ import annotations

import httpx
import pytest
from fakes import EMPTY_SHA256_BASE64, FakeHasher, ScriptedMarketplace

from jetbrains_plugins.content_hash import (
    ContentHashResolver,
    NegativeResultCache,
    relative_path,
    store_name,
)
from jetbrains_plugins.database import PluginDatabase, PluginKey
from jetbrains_plugins.errors import PrefetchError, UnexpectedDownloadUrlError, UpstreamError
from jetbrains_plugins.marketplace import MarketplaceClient
from jetbrains_plugins.resilience import Deadline
from jetbrains_plugins.schemas import PluginEntry

PREFIX = "https://downloads.marketplace.jetbrains.com/"


def _resolver(
    db: PluginDatabase,
    http_client: httpx.Client,
    hasher: FakeHasher,
    **kwargs: object,
) -> ContentHashResolver:
    marketplace = MarketplaceClient(http_client)
    return ContentHashResolver(db, marketplace, hasher, **kwargs)  # type: ignore[arg-type]


class TestHelpers:
    """Tests for store_name and relative_path."""

    def test_store_name_replaces_non_alphanumerics(self) -> None:
        """Test every non-alphanumeric character becomes a dash."""
        assert store_name("org.rust.lang", "0.4.200") == "org-rust-lang-0-4-200-source"
        assert store_name("a b+c", "1_2") == "a-b-c-1-2-source"

    def test_relative_path(self) -> None:
        """Test the downloads prefix is stripped."""
        assert relative_path(f"{PREFIX}files/1/a.zip", PREFIX) == "files/1/a.zip"

    def test_relative_path_outside_prefix(self) -> None:
        """Test a foreign URL is refused and not retried."""
        with pytest.raises(UnexpectedDownloadUrlError) as exc_info:
            relative_path("https://cdn.example.com/a.zip", PREFIX)

        assert not exc_info.value.retryable


class TestNegativeResultCache:
    """Tests for NegativeResultCache."""

    def test_membership(self) -> None:
        """Test added keys are members."""
        cache = NegativeResultCache()
        key = PluginKey("plugin", "1.0")

        assert key not in cache
        cache.add(key)
        assert key in cache
        assert len(cache) == 1


class TestContentHashResolver:
    """Tests for ContentHashResolver.resolve."""

    def test_hashes_new_archive(
        self,
        marketplace_stub: ScriptedMarketplace,
        http_client: httpx.Client,
        fake_hasher: FakeHasher,
    ) -> None:
        """Test a new archive is probed, unpacked and hashed."""
        marketplace_stub.downloads[("org.rust.lang", "0.4.200")] = "files/8182/1/rust.zip"
        resolver = _resolver(PluginDatabase(), http_client, fake_hasher)

        entry = resolver.resolve("org.rust.lang", "0.4.200")

        assert entry == PluginEntry(path="files/8182/1/rust.zip", hash=EMPTY_SHA256_BASE64)
        assert fake_hasher.calls == [
            {
                "name": "org-rust-lang-0-4-200-source",
                "url": f"{PREFIX}files/8182/1/rust.zip",
                "unpack": True,
                "executable": False,
            }
        ]

    def test_jar_is_hashed_as_executable(
        self,
        marketplace_stub: ScriptedMarketplace,
        http_client: httpx.Client,
        fake_hasher: FakeHasher,
    ) -> None:
        """Test a single-file jar is not unpacked."""
        marketplace_stub.downloads[("p", "1")] = "files/1/p.jar"
        resolver = _resolver(PluginDatabase(), http_client, fake_hasher)

        entry = resolver.resolve("p", "1")

        assert entry is not None
        assert entry.path == "files/1/p.jar"
        assert fake_hasher.calls[0]["unpack"] is False
        assert fake_hasher.calls[0]["executable"] is True

    def test_query_is_stripped(
        self,
        marketplace_stub: ScriptedMarketplace,
        http_client: httpx.Client,
        fake_hasher: FakeHasher,
    ) -> None:
        """Test tracking parameters on the redirect target are dropped."""
        marketplace_stub.downloads[("p", "1")] = "files/1/p.zip"
        resolver = _resolver(PluginDatabase(), http_client, fake_hasher)

        entry = resolver.resolve("p", "1")

        assert entry is not None
        assert "?" not in entry.path
        assert "?" not in str(fake_hasher.calls[0]["url"])

    def test_known_entry_skips_network(
        self,
        marketplace_stub: ScriptedMarketplace,
        http_client: httpx.Client,
        fake_hasher: FakeHasher,
    ) -> None:
        """Test an entry already in the database is returned as is."""
        known = PluginEntry(path="files/old.zip", hash="b2xk")
        db = PluginDatabase({PluginKey("p", "1"): known})
        resolver = _resolver(db, http_client, fake_hasher)

        assert resolver.resolve("p", "1") == known
        assert marketplace_stub.requests == []
        assert fake_hasher.calls == []

    def test_not_found_is_probed_once(
        self,
        marketplace_stub: ScriptedMarketplace,
        http_client: httpx.Client,
        fake_hasher: FakeHasher,
    ) -> None:
        """Test two resolutions of a missing release make one probe."""
        resolver = _resolver(PluginDatabase(), http_client, fake_hasher)

        assert resolver.resolve("p", "1") is None
        assert resolver.resolve("p", "1") is None

        assert marketplace_stub.count("HEAD", "/plugin/download") == 1
        assert PluginKey("p", "1") in resolver.negative_cache
        assert fake_hasher.calls == []

    def test_shared_negative_cache(
        self,
        marketplace_stub: ScriptedMarketplace,
        http_client: httpx.Client,
        fake_hasher: FakeHasher,
    ) -> None:
        """Test a pre-populated cache short-circuits the probe."""
        cache = NegativeResultCache()
        cache.add(PluginKey("p", "1"))
        resolver = _resolver(PluginDatabase(), http_client, fake_hasher, negative_cache=cache)

        assert resolver.resolve("p", "1") is None
        assert marketplace_stub.requests == []

    def test_other_status_is_an_error(
        self,
        marketplace_stub: ScriptedMarketplace,
        http_client: httpx.Client,
        fake_hasher: FakeHasher,
    ) -> None:
        """Test a non-404 failure raises and is not cached."""
        marketplace_stub.downloads[("p", "1")] = 503
        resolver = _resolver(PluginDatabase(), http_client, fake_hasher)

        with pytest.raises(UpstreamError) as exc_info:
            resolver.resolve("p", "1")

        assert exc_info.value.status_code == 503
        assert PluginKey("p", "1") not in resolver.negative_cache

    def test_foreign_download_url(
        self,
        marketplace_stub: ScriptedMarketplace,
        http_client: httpx.Client,
        fake_hasher: FakeHasher,
    ) -> None:
        """Test a download outside the known prefix is refused before hashing."""
        marketplace_stub.downloads[("p", "1")] = "files/1/p.zip"
        resolver = _resolver(
            PluginDatabase(),
            http_client,
            fake_hasher,
            downloads_prefix="https://mirror.example.com/",
        )

        with pytest.raises(UnexpectedDownloadUrlError):
            resolver.resolve("p", "1")
        assert fake_hasher.calls == []

    def test_undecodable_digest(
        self,
        marketplace_stub: ScriptedMarketplace,
        http_client: httpx.Client,
    ) -> None:
        """Test a digest outside the nix alphabet raises PrefetchError."""
        marketplace_stub.downloads[("p", "1")] = "files/1/p.zip"
        resolver = _resolver(PluginDatabase(), http_client, FakeHasher(digest="e" * 52))

        with pytest.raises(PrefetchError, match="cannot decode digest"):
            resolver.resolve("p", "1")

    def test_expired_deadline(
        self,
        marketplace_stub: ScriptedMarketplace,
        http_client: httpx.Client,
        fake_hasher: FakeHasher,
    ) -> None:
        """Test no request is made once the deadline has passed."""
        marketplace_stub.downloads[("p", "1")] = "files/1/p.zip"
        resolver = _resolver(PluginDatabase(), http_client, fake_hasher)

        with pytest.raises(TimeoutError):
            resolver.resolve("p", "1", deadline=Deadline(0.0))
        assert marketplace_stub.requests == []
