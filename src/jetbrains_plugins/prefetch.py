"""Adapter for the external content-addressing tool.

Artifacts are hashed with ``nix-prefetch-url``, which downloads a URL into
the Nix store and prints the SHA-256 of the file (or of the unpacked
directory's NAR serialisation) in Nix's base-32 alphabet. The stored copy is
only needed for the hash, so it is deleted right after with
``nix-store --delete``; a failed delete is logged and otherwise ignored.

Example:
    >>> prefetcher = Prefetcher(ToolPaths.discover())
    >>> digest = prefetcher.prefetch("foo-1-0-source", url, unpack=True)
    >>> entry_hash = nix32_to_base64(digest)
"""

from __future__ import annotations

import base64
import shutil
import subprocess
from dataclasses import dataclass
from typing import Protocol

import structlog

from jetbrains_plugins.errors import PrefetchError, TaskTimeoutError, ToolNotFoundError

logger = structlog.get_logger(__name__)

NIX_PREFETCH_URL = "nix-prefetch-url"
NIX_STORE = "nix-store"

NIX32_ALPHABET = "0123456789abcdfghijklmnpqrsvwxyz"
"""Nix base-32 alphabet (no e, o, t, u)."""

SHA256_NIX32_LENGTH = 52
"""Length of a SHA-256 digest in Nix base-32."""

DEFAULT_TOOL_TIMEOUT = 1200.0


def decode_nix32(text: str) -> bytes:
    """Decode a Nix base-32 string into raw bytes.

    Nix base-32 is little-endian over 5-bit groups, read from the last
    character to the first.

    Args:
        text: Encoded digest, e.g. 52 characters for SHA-256.

    Returns:
        Decoded bytes (``len(text) * 5 // 8`` of them).

    Raises:
        ValueError: On a character outside the alphabet or leftover bits.
    """
    size = len(text) * 5 // 8
    out = bytearray(size)
    for n in range(len(text)):
        char = text[len(text) - n - 1]
        digit = NIX32_ALPHABET.find(char)
        if digit < 0:
            raise ValueError(f"Invalid nix base-32 character: {char!r}")
        bit = n * 5
        index, shift = divmod(bit, 8)
        out[index] |= (digit << shift) & 0xFF
        carry = digit >> (8 - shift)
        if index + 1 < size:
            out[index + 1] |= carry
        elif carry:
            raise ValueError(f"Invalid nix base-32 string: {text!r}")
    return bytes(out)


def nix32_to_base64(text: str) -> str:
    """Re-encode a Nix base-32 digest as standard padded base64."""
    return base64.b64encode(decode_nix32(text)).decode("ascii")


@dataclass(frozen=True)
class ToolPaths:
    """Absolute paths of the external tools, resolved once at startup."""

    nix_prefetch_url: str
    nix_store: str

    @classmethod
    def discover(cls) -> ToolPaths:
        """Look both tools up on PATH.

        Raises:
            ToolNotFoundError: If either tool is missing.
        """
        prefetch_url = shutil.which(NIX_PREFETCH_URL)
        if prefetch_url is None:
            raise ToolNotFoundError(NIX_PREFETCH_URL)
        store = shutil.which(NIX_STORE)
        if store is None:
            raise ToolNotFoundError(NIX_STORE)
        return cls(nix_prefetch_url=prefetch_url, nix_store=store)


class ArtifactHasher(Protocol):
    """Anything that can content-address a URL."""

    def prefetch(
        self,
        name: str,
        url: str,
        *,
        unpack: bool = False,
        executable: bool = False,
        timeout: float | None = None,
    ) -> str:
        """Return the SHA-256 of the artifact in Nix base-32."""
        ...


class Prefetcher:
    """Runs ``nix-prefetch-url`` and cleans up the store path it creates."""

    def __init__(self, tools: ToolPaths, *, timeout: float = DEFAULT_TOOL_TIMEOUT) -> None:
        self._tools = tools
        self._timeout = timeout

    def prefetch(
        self,
        name: str,
        url: str,
        *,
        unpack: bool = False,
        executable: bool = False,
        timeout: float | None = None,
    ) -> str:
        """Download and hash an artifact.

        Args:
            name: Store name for the download.
            url: Artifact URL.
            unpack: Hash the unpacked archive contents instead of the file.
            executable: Mark the stored file executable (single-file artifacts).
            timeout: Override for the tool timeout, already clamped by the caller.

        Returns:
            SHA-256 digest in Nix base-32.

        Raises:
            PrefetchError: If the tool cannot be started, exits non-zero, or
                prints unexpected output.
            TaskTimeoutError: If the tool ran past its timeout.
        """
        effective_timeout = self._timeout if timeout is None else min(timeout, self._timeout)
        command = [
            self._tools.nix_prefetch_url,
            "--print-path",
            "--type",
            "sha256",
            "--name",
            name,
        ]
        if unpack:
            command.append("--unpack")
        if executable:
            command.append("--executable")
        command.append(url)

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=effective_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise TaskTimeoutError(effective_timeout) from e
        except OSError as e:
            raise PrefetchError(url, f"cannot run {NIX_PREFETCH_URL}: {e}") from e

        if result.returncode != 0:
            reason = f"{NIX_PREFETCH_URL} exited with code {result.returncode}"
            if result.stderr:
                reason = f"{reason}: {result.stderr.strip()}"
            raise PrefetchError(url, reason)

        lines = result.stdout.splitlines()
        if len(lines) < 2 or not lines[0].strip() or not lines[1].strip():
            raise PrefetchError(url, f"unexpected output: {result.stdout!r}")
        digest, store_path = lines[0].strip(), lines[1].strip()

        self._delete_store_path(store_path)
        if len(digest) != SHA256_NIX32_LENGTH:
            raise PrefetchError(url, f"unexpected digest: {digest!r}")
        return digest

    def _delete_store_path(self, store_path: str) -> None:
        try:
            result = subprocess.run(
                [self._tools.nix_store, "--delete", store_path],
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("store_path_delete_failed", path=store_path, error=str(e))
            return
        if result.returncode != 0:
            logger.warning(
                "store_path_delete_failed",
                path=store_path,
                exit_code=result.returncode,
                error=result.stderr.strip(),
            )


__all__ = [
    "ArtifactHasher",
    "NIX32_ALPHABET",
    "Prefetcher",
    "ToolPaths",
    "decode_nix32",
    "nix32_to_base64",
]
