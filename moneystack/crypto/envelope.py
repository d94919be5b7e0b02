"""
Envelope Codec

Encrypts a single string into a self-describing text envelope:

    "ENC:" + base64( nonce(12) || ciphertext || tag(16) )

using AES-256-GCM with a fresh random nonce per call. Standard base64
alphabet, no URL-safe substitution.

DESIGN DECISION: Untagged input to decrypt() is returned unchanged.
This is a backward-compatibility policy for rows written before
encryption existed, NOT a security boundary.

This module knows nothing about accounts or transactions.
"""

import base64
import binascii
import os
from decimal import Decimal
from typing import Union

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from moneystack.crypto.errors import (
    DecryptionIntegrityError,
    EnvironmentCryptoUnavailableError,
    MalformedEnvelopeError,
)


ENVELOPE_TAG = "ENC:"
NONCE_SIZE = 12
AUTH_TAG_SIZE = 16
MIN_PAYLOAD_SIZE = NONCE_SIZE + AUTH_TAG_SIZE

Number = Union[int, float, Decimal]


def _cipher(key: bytes) -> AESGCM:
    try:
        return AESGCM(key)
    except UnsupportedAlgorithm as e:
        raise EnvironmentCryptoUnavailableError(f"AES-GCM unavailable: {e}") from e


def is_encrypted(value: object) -> bool:
    """Cheap tag check. No decryption is attempted."""
    return isinstance(value, str) and value.startswith(ENVELOPE_TAG)


def encrypt(plaintext: str, key: bytes) -> str:
    """
    Encrypt a string into an envelope.

    Two calls with the same plaintext and key produce different
    envelopes (fresh nonce each time).

    Raises:
        ValueError: If the key is not a valid AES key length
        EnvironmentCryptoUnavailableError: If AES-GCM is unavailable
    """
    nonce = os.urandom(NONCE_SIZE)
    # AESGCM appends the 16-byte tag to the ciphertext
    sealed = _cipher(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    return ENVELOPE_TAG + base64.b64encode(nonce + sealed).decode("ascii")


def decode_envelope(envelope: str) -> bytes:
    """
    Strip the tag and base64-decode an envelope.

    Raises:
        MalformedEnvelopeError: If the value is untagged, not valid
            base64, or shorter than nonce + tag
    """
    if not is_encrypted(envelope):
        raise MalformedEnvelopeError("Value is not an envelope")

    try:
        raw = base64.b64decode(envelope[len(ENVELOPE_TAG):], validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedEnvelopeError(f"Envelope is not valid base64: {e}") from e

    if len(raw) < MIN_PAYLOAD_SIZE:
        raise MalformedEnvelopeError(
            f"Envelope payload is {len(raw)} bytes, minimum is {MIN_PAYLOAD_SIZE}"
        )
    return raw


def decrypt(envelope: str, key: bytes) -> str:
    """
    Decrypt an envelope. Untagged values are returned unchanged.

    Never returns partial or best-effort plaintext.

    Raises:
        MalformedEnvelopeError: Tagged value is structurally invalid
        DecryptionIntegrityError: Authentication failed (wrong key or tampering)
    """
    if not is_encrypted(envelope):
        return envelope

    raw = decode_envelope(envelope)
    nonce, sealed = raw[:NONCE_SIZE], raw[NONCE_SIZE:]

    try:
        plaintext = _cipher(key).decrypt(nonce, sealed, None)
    except InvalidTag as e:
        raise DecryptionIntegrityError("Envelope authentication failed") from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedEnvelopeError("Decrypted payload is not UTF-8") from e


def encrypt_number(value: Number, key: bytes) -> str:
    """Encrypt a number via its string form."""
    return encrypt(str(value), key)


def decrypt_number(envelope: str, key: bytes) -> float:
    """
    Decrypt a number encrypted with encrypt_number().

    Exact formatting is not preserved; the numeric value is, within
    normal float precision.
    """
    text = decrypt(envelope, key)
    try:
        return float(text)
    except ValueError as e:
        raise MalformedEnvelopeError("Decrypted value is not a number") from e
