"""
Cryptography package.

The application-facing async API lives in moneystack.crypto.api; it is not
re-exported here because it depends on the record transformers.
"""

from moneystack.crypto.envelope import (
    AUTH_TAG_SIZE,
    ENVELOPE_TAG,
    NONCE_SIZE,
    decrypt,
    decrypt_number,
    encrypt,
    encrypt_number,
    is_encrypted,
)
from moneystack.crypto.errors import (
    DecryptionIntegrityError,
    EncryptionError,
    EnvelopeTooLargeError,
    EnvironmentCryptoUnavailableError,
    MalformedEnvelopeError,
    MissingKeyError,
    RecordMutationError,
    UnsupportedPayloadVersionError,
)
from moneystack.crypto.kdf import KEY_LENGTH, build_salt, derive_key

__all__ = [
    # Codec
    "AUTH_TAG_SIZE",
    "ENVELOPE_TAG",
    "NONCE_SIZE",
    "decrypt",
    "decrypt_number",
    "encrypt",
    "encrypt_number",
    "is_encrypted",
    # Key derivation
    "KEY_LENGTH",
    "build_salt",
    "derive_key",
    # Exceptions
    "DecryptionIntegrityError",
    "EncryptionError",
    "EnvelopeTooLargeError",
    "EnvironmentCryptoUnavailableError",
    "MalformedEnvelopeError",
    "MissingKeyError",
    "RecordMutationError",
    "UnsupportedPayloadVersionError",
]
