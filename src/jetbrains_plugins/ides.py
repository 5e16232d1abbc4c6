"""IDE product table and IDE release identities.

An IDE release is identified by its product and marketing version
(e.g. ``idea`` ``2025.1``). Its build number (e.g. ``251.23774.435``) is the
ordering key used for plugin compatibility, but it is not part of identity
and cannot be recovered from a persisted IDE table filename.

Example:
    >>> ide = IdeIdentity(IdeProduct.GOLAND, "2025.1", "251.100")
    >>> ide.to_json_filename()
    'goland-2025.1.json'
    >>> IdeIdentity.from_json_filename("goland-2025.1.json") == ide
    True
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

JSON_SUFFIX = ".json"


class IdeProduct(Enum):
    """Closed set of IDE products the database is generated for.

    Each member's value is ``(marketplace product code, canonical short key)``.
    The short key names persisted IDE tables and packaging attributes.
    """

    INTELLIJ_IDEA = ("IU", "idea")
    PHPSTORM = ("PS", "phpstorm")
    WEBSTORM = ("WS", "webstorm")
    PYCHARM = ("PY", "pycharm")
    RUBYMINE = ("RM", "ruby-mine")
    CLION = ("CL", "clion")
    GOLAND = ("GO", "goland")
    DATAGRIP = ("DB", "datagrip")
    DATASPELL = ("DS", "dataspell")
    RIDER = ("RD", "rider")
    ANDROID_STUDIO = ("AI", "android-studio")
    RUSTROVER = ("RR", "rust-rover")
    AQUA = ("QA", "aqua")
    WRITERSIDE = ("WRS", "writerside")
    MPS = ("MPS", "mps")

    @property
    def product_code(self) -> str:
        """Marketplace product code (e.g. ``IU``)."""
        return self.value[0]

    @property
    def short_key(self) -> str:
        """Canonical short key (e.g. ``idea``)."""
        return self.value[1]

    @classmethod
    def from_code(cls, code: str) -> IdeProduct | None:
        """Look up a product by marketplace code, None if unknown."""
        for product in cls:
            if product.product_code == code:
                return product
        return None

    @classmethod
    def from_short_key(cls, key: str) -> IdeProduct | None:
        """Look up a product by canonical short key, None if unknown."""
        for product in cls:
            if product.short_key == key:
                return product
        return None


@dataclass(frozen=True)
class IdeIdentity:
    """One released IDE version.

    Equality and hashing use (product, version) only.

    Attributes:
        product: IDE product.
        version: Marketing version, also the persistence key.
        build_number: Dotted build number; empty when reloaded from disk.
    """

    product: IdeProduct
    version: str
    build_number: str = field(default="", compare=False)

    @property
    def has_build_number(self) -> bool:
        """Whether this identity can take part in compatibility resolution."""
        return bool(self.build_number)

    def to_json_filename(self) -> str:
        """Return the persisted IDE table filename for this release."""
        return f"{self.product.short_key}-{self.version}{JSON_SUFFIX}"

    @classmethod
    def from_json_filename(cls, filename: str) -> IdeIdentity | None:
        """Parse a persisted IDE table filename.

        The build number is not recoverable and is left empty.

        Args:
            filename: Filename such as ``rust-rover-2025.1.json``.

        Returns:
            The identity, or None if the name is not a recognized IDE table.
        """
        if not filename.endswith(JSON_SUFFIX):
            return None
        stem = filename[: -len(JSON_SUFFIX)]
        product_key, sep, version = stem.rpartition("-")
        if not sep or not product_key or not version:
            return None
        product = IdeProduct.from_short_key(product_key)
        if product is None:
            return None
        return cls(product, version)

    def __str__(self) -> str:
        return f"{self.product.short_key}-{self.version}"


def is_allowed_version(version: str, prefixes: Iterable[str]) -> bool:
    """Check a release version against the allow-list of release-series prefixes."""
    return any(version.startswith(prefix) for prefix in prefixes)


__all__ = ["IdeIdentity", "IdeProduct", "is_allowed_version"]
