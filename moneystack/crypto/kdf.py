"""
Key Derivation

Turns a password plus the user's stable ID into a 256-bit AES key with
PBKDF2-HMAC-SHA256.

The salt is `salt_prefix + user_id`, so the same user always gets the
same salt without a storage round trip. The user ID is salt material only,
it is not secret.
"""

from typing import Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from moneystack.config import get_settings
from moneystack.crypto.errors import EnvironmentCryptoUnavailableError


KEY_LENGTH = 32  # AES-256


def build_salt(user_id: str, salt_prefix: Optional[str] = None) -> bytes:
    """Salt for a user: the configured prefix followed by the user ID."""
    if salt_prefix is None:
        salt_prefix = get_settings().encryption.salt_prefix
    return (salt_prefix + user_id).encode("utf-8")


def derive_key(
    password: str,
    user_id: str,
    *,
    salt_prefix: Optional[str] = None,
    iterations: Optional[int] = None,
) -> bytes:
    """
    Derive the encryption key for (password, user_id).

    Deterministic: identical inputs always give identical bytes.
    This is CPU-bound (100k iterations by default); async callers should
    run it in a worker thread and derive once per logical operation.

    Raises:
        ValueError: If password or user_id is empty
        EnvironmentCryptoUnavailableError: If PBKDF2/SHA-256 is unavailable
    """
    if not password:
        raise ValueError("password must be a non-empty string")
    if not user_id:
        raise ValueError("user_id must be a non-empty string")

    if iterations is None:
        iterations = get_settings().encryption.pbkdf2_iterations

    try:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=build_salt(user_id, salt_prefix),
            iterations=iterations,
        )
        return kdf.derive(password.encode("utf-8"))
    except UnsupportedAlgorithm as e:
        raise EnvironmentCryptoUnavailableError(f"PBKDF2-HMAC-SHA256 unavailable: {e}") from e
