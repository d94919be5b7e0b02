"""
Shared fixtures.

Key derivation runs with the minimum allowed iteration count so the suite
stays fast; tests that care about the production count set it explicitly.
"""

import pytest

from moneystack.config import get_settings
from moneystack.crypto import derive_key


TEST_USER_ID = "user-42"
TEST_PASSWORD = "CorrectHorse8!"


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    monkeypatch.setenv("MONEYSTACK_ENCRYPTION_PBKDF2_ITERATIONS", "1000")
    monkeypatch.delenv("MONEYSTACK_SESSION_TTL_MINUTES", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def key() -> bytes:
    return derive_key(TEST_PASSWORD, TEST_USER_ID)


@pytest.fixture
def other_key() -> bytes:
    return derive_key(TEST_PASSWORD, "user-43")
