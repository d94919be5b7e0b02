"""Session key management package."""

from moneystack.session.key_cache import (
    InMemorySessionStorage,
    SessionKeyCache,
    SessionStorageBackend,
)
from moneystack.session.context import EncryptionContext

__all__ = [
    "EncryptionContext",
    "InMemorySessionStorage",
    "SessionKeyCache",
    "SessionStorageBackend",
]
