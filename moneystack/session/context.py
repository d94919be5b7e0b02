"""
Encryption Context

An explicit per-user object passed to every call site that encrypts or
decrypts. Binds the user's ID to a SessionKeyCache and derives the key
on demand.

Authentication integration:
- on sign-in / sign-up: await context.begin_session(password)
- on sign-out:          await context.end_session()
"""

import asyncio
import hashlib
from typing import Optional

from moneystack.audit import AuditLogger
from moneystack.crypto import envelope
from moneystack.crypto.envelope import Number, is_encrypted
from moneystack.crypto.errors import EnvironmentCryptoUnavailableError, MissingKeyError
from moneystack.crypto.kdf import derive_key
from moneystack.session.key_cache import SessionKeyCache


class EncryptionContext:
    """
    Per-session encryption state for one user.

    The password is re-read from the cache on every call; the derived
    key is reused only while the cached password is unchanged.
    """

    def __init__(
        self,
        user_id: str,
        key_cache: Optional[SessionKeyCache] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        if not user_id:
            raise ValueError("user_id must be a non-empty string")
        self._user_id = user_id
        self._key_cache = key_cache or SessionKeyCache()
        self._audit_logger = audit_logger
        self._derived: Optional[tuple[bytes, bytes]] = None

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def key_cache(self) -> SessionKeyCache:
        return self._key_cache

    @property
    def has_encryption_key(self) -> bool:
        return self._key_cache.has_key

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    async def begin_session(self, password: str) -> None:
        """Cache the password captured at sign-in/sign-up."""
        self._key_cache.store(password)
        self._derived = None
        if self._audit_logger:
            await self._audit_logger.log_session_started(self._user_id)

    async def end_session(self) -> None:
        """Forget the password (explicit sign-out)."""
        self._key_cache.clear()
        self._derived = None
        if self._audit_logger:
            await self._audit_logger.log_session_ended(self._user_id)

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    async def require_password(self, operation: str = "operation") -> str:
        """
        Read the cached password once for a logical operation.

        Raises:
            MissingKeyError: No password cached; the user must sign in again
        """
        try:
            return self._key_cache.require()
        except MissingKeyError:
            self._derived = None
            if self._audit_logger:
                await self._audit_logger.log_missing_key(self._user_id, operation)
            raise

    async def derive_key(self, operation: str = "operation") -> bytes:
        """Return the key for the currently cached password."""
        password = await self.require_password(operation)
        # Memo is keyed by a digest so the password itself is not held here
        fingerprint = hashlib.sha256(password.encode("utf-8")).digest()
        if self._derived is not None and self._derived[0] == fingerprint:
            return self._derived[1]
        try:
            key = await asyncio.to_thread(derive_key, password, self._user_id)
        except EnvironmentCryptoUnavailableError as e:
            if self._audit_logger:
                await self._audit_logger.log_error(
                    type(e).__name__, str(e), details={"operation": operation}
                )
            raise
        self._derived = (fingerprint, key)
        return key

    # -------------------------------------------------------------------------
    # Field helpers
    # -------------------------------------------------------------------------

    async def encrypt_field(self, value: str) -> str:
        key = await self.derive_key("encrypt_field")
        return envelope.encrypt(value, key)

    async def decrypt_field(self, value: str) -> str:
        # Legacy values still need a signed-in user
        key = await self.derive_key("decrypt_field")
        return envelope.decrypt(value, key)

    async def encrypt_number(self, value: Number) -> str:
        key = await self.derive_key("encrypt_number")
        return envelope.encrypt_number(value, key)

    async def decrypt_number(self, value: str) -> float:
        key = await self.derive_key("decrypt_number")
        return envelope.decrypt_number(value, key)

    async def verify_password(self, test_envelope: str) -> None:
        """
        Explicit "check my password" action.

        Raises:
            MissingKeyError: No password cached
            DecryptionIntegrityError: The cached password does not open the envelope
        """
        key = await self.derive_key("verify_password")
        if is_encrypted(test_envelope):
            envelope.decrypt(test_envelope, key)
