"""Shared pytest fixtures for jetbrains-plugins tests.

No test needs network access or a Nix installation: HTTP goes through
``httpx.MockTransport`` and hashing through a fake tool (see fakes.py).

NOTE: Do NOT add __init__.py to test directories - pytest uses importlib mode
which can cause namespace collisions with __init__.py files.
"""

from __future__ import annotations

from collections.abc import Generator

import httpx
import pytest
import structlog
from fakes import FakeHasher, ScriptedMarketplace

from jetbrains_plugins.ides import IdeIdentity, IdeProduct


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo any structlog configuration a test (e.g. a CLI run) applied."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def idea_ide() -> IdeIdentity:
    """IntelliJ IDEA 2025.1 with build 251.100."""
    return IdeIdentity(IdeProduct.INTELLIJ_IDEA, "2025.1", "251.100")


@pytest.fixture
def goland_ide() -> IdeIdentity:
    """GoLand 2024.3 with build 243.21565.208."""
    return IdeIdentity(IdeProduct.GOLAND, "2024.3", "243.21565.208")


@pytest.fixture
def fake_hasher() -> FakeHasher:
    """Fake hashing tool returning the empty-string digest."""
    return FakeHasher()


@pytest.fixture
def marketplace_stub() -> ScriptedMarketplace:
    """Empty scripted marketplace; tests fill in details and downloads."""
    return ScriptedMarketplace()


@pytest.fixture
def http_client(marketplace_stub: ScriptedMarketplace) -> Generator[httpx.Client, None, None]:
    """HTTP client wired to the scripted marketplace."""
    with marketplace_stub.client() as client:
        yield client
