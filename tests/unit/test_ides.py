"""Unit tests for the IDE product table and IDE identities."""

from __future__ import annotations

import pytest

from jetbrains_plugins.ides import IdeIdentity, IdeProduct, is_allowed_version


class TestIdeProduct:
    """Tests for IdeProduct lookups."""

    def test_table_is_complete(self) -> None:
        """Test every product has a distinct code and short key."""
        assert len(IdeProduct) == 15
        assert len({p.product_code for p in IdeProduct}) == 15
        assert len({p.short_key for p in IdeProduct}) == 15

    @pytest.mark.parametrize(
        ("code", "key"),
        [("IU", "idea"), ("RM", "ruby-mine"), ("AI", "android-studio"), ("RR", "rust-rover")],
    )
    def test_code_and_key_lookup(self, code: str, key: str) -> None:
        """Test lookups by marketplace code and by short key agree."""
        product = IdeProduct.from_code(code)

        assert product is not None
        assert product.short_key == key
        assert IdeProduct.from_short_key(key) is product

    def test_unknown_lookups(self) -> None:
        """Test unknown codes and keys return None."""
        assert IdeProduct.from_code("IC") is None
        assert IdeProduct.from_short_key("intellij") is None


class TestIdeIdentity:
    """Tests for IdeIdentity equality and filename codec."""

    def test_build_number_not_part_of_identity(self) -> None:
        """Test equality and hashing ignore the build number."""
        with_build = IdeIdentity(IdeProduct.PYCHARM, "2025.1", "251.1")
        without_build = IdeIdentity(IdeProduct.PYCHARM, "2025.1")

        assert with_build == without_build
        assert hash(with_build) == hash(without_build)
        assert with_build.has_build_number
        assert not without_build.has_build_number

    def test_filename_round_trip(self) -> None:
        """Test a dashed short key survives the filename codec."""
        ide = IdeIdentity(IdeProduct.RUSTROVER, "2025.1.2", "251.25410.115")

        filename = ide.to_json_filename()
        parsed = IdeIdentity.from_json_filename(filename)

        assert filename == "rust-rover-2025.1.2.json"
        assert parsed == ide
        assert parsed is not None
        assert parsed.build_number == ""

    @pytest.mark.parametrize(
        "filename",
        ["idea-2025.1.txt", "idea.json", "unknown-2025.1.json", "-2025.1.json", "idea-.json"],
    )
    def test_invalid_filenames(self, filename: str) -> None:
        """Test unrecognized filenames parse to None."""
        assert IdeIdentity.from_json_filename(filename) is None


class TestIsAllowedVersion:
    """Tests for the release-series allow-list."""

    def test_prefix_match(self) -> None:
        """Test versions are matched by prefix only."""
        prefixes = ["2025.", "2024.3."]

        assert is_allowed_version("2025.1.1", prefixes)
        assert is_allowed_version("2024.3", prefixes) is False
        assert is_allowed_version("2024.3.2", prefixes)
        assert not is_allowed_version("2024.2.5", prefixes)
