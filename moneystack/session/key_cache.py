"""
Session Key Cache

Holds the user's password for the lifetime of a logical session so that
repeated encrypt/decrypt calls don't re-prompt.

DESIGN DECISION: The backing store is injectable and must be
session-scoped (in a browser: sessionStorage; here: an in-memory dict
owned by one session/request). Never a store that survives restarts.

Callers must read the password once per logical operation and must not
hold it in long-lived variables: the cache can be cleared between calls.
No locking - values are only ever replaced wholesale.
"""

import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import structlog

from moneystack.config import get_settings
from moneystack.crypto.errors import MissingKeyError


logger = structlog.get_logger(__name__)


class SessionStorageBackend(ABC):
    """Minimal key/value interface of a session-scoped store."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        pass


class InMemorySessionStorage(SessionStorageBackend):
    """Process-memory store; gone when the object (or process) is."""

    def __init__(self):
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)


class SessionKeyCache:
    """
    store(password) / get() / clear(), plus require() for protected operations.

    Optional expiry: with a TTL set, a password older than the TTL is
    removed on the next read and reported as absent.
    """

    def __init__(
        self,
        backend: Optional[SessionStorageBackend] = None,
        storage_key: Optional[str] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            backend: Session-scoped store. Defaults to a fresh in-memory one.
            storage_key: Key for the password. Defaults to SessionSettings.storage_key.
            ttl_seconds: Expiry. Defaults to SessionSettings.ttl_minutes (None = no expiry).
            clock: Time source, injectable for tests.
        """
        settings = get_settings().session
        self._backend = backend or InMemorySessionStorage()
        self._key = storage_key or settings.storage_key
        self._stamp_key = f"{self._key}:stored_at"
        if ttl_seconds is None and settings.ttl_minutes is not None:
            ttl_seconds = settings.ttl_minutes * 60
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def store(self, password: str) -> None:
        """Cache the password, replacing any previous one."""
        if not password:
            raise ValueError("password must be a non-empty string")
        self._backend.set_item(self._key, password)
        self._backend.set_item(self._stamp_key, repr(self._clock()))

    def get(self) -> Optional[str]:
        """Return the cached password, or None if absent or expired."""
        password = self._backend.get_item(self._key)
        if password is None:
            return None
        if self._is_expired():
            logger.info("session_key_expired", ttl_seconds=self._ttl_seconds)
            self.clear()
            return None
        return password

    def require(self) -> str:
        """
        Return the cached password.

        Raises:
            MissingKeyError: No password; the user must sign in again
        """
        password = self.get()
        if password is None:
            raise MissingKeyError()
        return password

    def clear(self) -> None:
        self._backend.remove_item(self._key)
        self._backend.remove_item(self._stamp_key)

    @property
    def has_key(self) -> bool:
        return self.get() is not None

    def _is_expired(self) -> bool:
        if self._ttl_seconds is None:
            return False
        stamp = self._backend.get_item(self._stamp_key)
        if stamp is None:
            # Written without a timestamp; treat as stale
            return True
        try:
            stored_at = float(stamp)
        except ValueError:
            return True
        return self._clock() - stored_at > self._ttl_seconds
