"""
Shared test fixtures for the vault-pki-audit test suite.

PKI material is generated per session with cryptography rather than
shipped as fixture files, so every test can choose its own serials,
common names and validity windows.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import datetime

import pytest
import structlog

from tests.pki_factory import NOW, IssuingAuthority


@pytest.fixture(scope="session")
def ca() -> IssuingAuthority:
    """One signing authority shared by the whole test session."""
    return IssuingAuthority()


@pytest.fixture()
def fixed_clock() -> Callable[[], datetime]:
    """A clock frozen at NOW, so expiry is deterministic."""
    return lambda: NOW


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Undo any structlog configuration a test (or main()) applied."""
    yield
    structlog.reset_defaults()
