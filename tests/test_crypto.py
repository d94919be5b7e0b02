"""
Tests for the envelope codec and key derivation.

No mocks: these run the real AES-GCM and PBKDF2 primitives.
"""

import asyncio
import base64
import hashlib
from decimal import Decimal

import pytest

from moneystack.config import get_settings
from moneystack.crypto import (
    AUTH_TAG_SIZE,
    ENVELOPE_TAG,
    KEY_LENGTH,
    NONCE_SIZE,
    DecryptionIntegrityError,
    MalformedEnvelopeError,
    build_salt,
    decrypt,
    decrypt_number,
    derive_key,
    encrypt,
    encrypt_number,
    is_encrypted,
)
from moneystack.crypto import api
from moneystack.models.records import Account

TEST_USER_ID = "user-42"
TEST_PASSWORD = "CorrectHorse8!"


def _tamper(envelope: str, index: int) -> str:
    raw = bytearray(base64.b64decode(envelope[len(ENVELOPE_TAG):]))
    raw[index] ^= 0x01
    return ENVELOPE_TAG + base64.b64encode(bytes(raw)).decode("ascii")


class TestKeyDerivation:
    """Tests for PBKDF2 key derivation."""

    def test_salt_is_prefix_plus_user_id(self):
        """Salt is the configured prefix joined with the user ID."""
        assert build_salt("user-42") == b"moneystack_zk_user-42"
        assert build_salt("user-42", salt_prefix="other_") == b"other_user-42"

    def test_key_is_256_bits(self, key):
        """Derived keys are AES-256 length."""
        assert len(key) == KEY_LENGTH == 32

    def test_derivation_is_deterministic(self):
        """Same password and user always give the same key."""
        first = derive_key(TEST_PASSWORD, TEST_USER_ID)
        second = derive_key(TEST_PASSWORD, TEST_USER_ID)
        assert first == second

    def test_user_id_changes_key(self, key, other_key):
        """Same password for a different user gives a different key."""
        assert key != other_key

    def test_password_changes_key(self, key):
        """A different password gives a different key."""
        assert derive_key("CorrectHorse9!", TEST_USER_ID) != key

    def test_matches_reference_pbkdf2(self):
        """Output equals PBKDF2-HMAC-SHA256 over the documented salt."""
        expected = hashlib.pbkdf2_hmac(
            "sha256",
            TEST_PASSWORD.encode("utf-8"),
            b"moneystack_zk_" + TEST_USER_ID.encode("utf-8"),
            1000,
            32,
        )
        assert derive_key(TEST_PASSWORD, TEST_USER_ID, iterations=1000) == expected

    def test_rejects_empty_password(self):
        """Empty passwords are a programming error."""
        with pytest.raises(ValueError):
            derive_key("", TEST_USER_ID)

    def test_rejects_empty_user_id(self):
        """Empty user IDs are a programming error."""
        with pytest.raises(ValueError):
            derive_key(TEST_PASSWORD, "")

    def test_default_iteration_count(self, monkeypatch):
        """Production default is 100,000 iterations."""
        monkeypatch.delenv("MONEYSTACK_ENCRYPTION_PBKDF2_ITERATIONS", raising=False)
        get_settings.cache_clear()
        assert get_settings().encryption.pbkdf2_iterations == 100_000


class TestEnvelope:
    """Tests for encrypt/decrypt of single strings."""

    def test_concrete_round_trip(self):
        """Known plaintext seals, opens, and refuses a different user's key."""
        key = derive_key("CorrectHorse8!", "user-42", iterations=100_000)
        other_key = derive_key("CorrectHorse8!", "user-43", iterations=100_000)
        plaintext = "Scotiabank Chequing"
        envelope = encrypt(plaintext, key)

        assert envelope.startswith("ENC:")
        raw = base64.b64decode(envelope[4:])
        assert len(raw) == 12 + 16 + len(plaintext.encode("utf-8"))
        assert decrypt(envelope, key) == plaintext

        with pytest.raises(DecryptionIntegrityError):
            decrypt(envelope, other_key)

    def test_fresh_nonce_per_call(self, key):
        """Encrypting the same value twice gives different envelopes."""
        first = encrypt("same", key)
        second = encrypt("same", key)
        assert first != second
        assert decrypt(first, key) == decrypt(second, key) == "same"

    def test_unicode_round_trip(self, key):
        """Non-ASCII text survives."""
        text = "Épargne – café ☕ 日本"
        assert decrypt(encrypt(text, key), key) == text

    def test_empty_string_is_encrypted(self, key):
        """Empty strings produce a real (minimum size) envelope."""
        envelope = encrypt("", key)
        assert is_encrypted(envelope)
        assert len(base64.b64decode(envelope[4:])) == NONCE_SIZE + AUTH_TAG_SIZE
        assert decrypt(envelope, key) == ""

    def test_untagged_value_passes_through(self, key):
        """Legacy plaintext is returned unchanged."""
        assert decrypt("Scotiabank Chequing", key) == "Scotiabank Chequing"
        assert decrypt("", key) == ""

    def test_is_encrypted(self, key):
        """Tag check only looks at the prefix."""
        assert is_encrypted(encrypt("x", key))
        assert is_encrypted("ENC:anything")
        assert not is_encrypted("enc:lowercase")
        assert not is_encrypted("Chequing")
        assert not is_encrypted(None)
        assert not is_encrypted(42)

    @pytest.mark.parametrize("index", [0, 12, -1])
    def test_tampering_detected(self, key, index):
        """Flipping a bit in nonce, ciphertext or tag fails authentication."""
        envelope = _tamper(encrypt("Scotiabank Chequing", key), index)
        with pytest.raises(DecryptionIntegrityError):
            decrypt(envelope, key)

    def test_invalid_base64_is_malformed(self, key):
        """Tagged garbage is malformed, not plaintext."""
        with pytest.raises(MalformedEnvelopeError):
            decrypt("ENC:not*valid*base64", key)

    def test_short_payload_is_malformed(self, key):
        """Payloads shorter than nonce + tag are rejected before decryption."""
        short = ENVELOPE_TAG + base64.b64encode(b"\x00" * 27).decode("ascii")
        with pytest.raises(MalformedEnvelopeError):
            decrypt(short, key)
        with pytest.raises(MalformedEnvelopeError):
            decrypt("ENC:", key)

    def test_malformed_is_an_integrity_error(self):
        """Callers that catch integrity failures also catch malformed envelopes."""
        assert issubclass(MalformedEnvelopeError, DecryptionIntegrityError)

    def test_number_round_trip(self, key):
        """Numbers go through their string form."""
        assert decrypt_number(encrypt_number(1500.50, key), key) == 1500.50
        assert decrypt_number(encrypt_number(Decimal("-42.10"), key), key) == -42.10
        assert decrypt_number(encrypt_number(0, key), key) == 0

    def test_non_numeric_payload_is_malformed(self, key):
        """decrypt_number refuses text that isn't a number."""
        with pytest.raises(MalformedEnvelopeError):
            decrypt_number(encrypt("abc", key), key)


class TestEncryptionApi:
    """Tests for the password-based async API."""

    def test_value_round_trip(self):
        """encrypt_value/decrypt_value with password and user ID."""
        async def run():
            envelope = await api.encrypt_value("Chequing", TEST_PASSWORD, TEST_USER_ID)
            return await api.decrypt_value(envelope, TEST_PASSWORD, TEST_USER_ID)

        assert asyncio.run(run()) == "Chequing"

    def test_decrypt_value_untagged(self):
        """Legacy values come back as-is."""
        result = asyncio.run(api.decrypt_value("Chequing", TEST_PASSWORD, TEST_USER_ID))
        assert result == "Chequing"

    def test_number_round_trip(self):
        """encrypt_number/decrypt_number with password and user ID."""
        async def run():
            envelope = await api.encrypt_number(99.95, TEST_PASSWORD, TEST_USER_ID)
            return await api.decrypt_number(envelope, TEST_PASSWORD, TEST_USER_ID)

        assert asyncio.run(run()) == 99.95

    def test_account_round_trip(self):
        """encrypt_account/decrypt_account bundle and restore the record."""
        account = Account(name="Checking", balance=Decimal("1500.50"), notes="primary")

        async def run():
            row = await api.encrypt_account(account, TEST_PASSWORD, TEST_USER_ID)
            assert is_encrypted(row.bank_name)
            return await api.decrypt_account(row, TEST_PASSWORD, TEST_USER_ID)

        assert asyncio.run(run()) == account

    def test_verify_encryption_key(self):
        """Right password verifies; wrong password and empty password don't."""
        async def run():
            envelope = await api.encrypt_value("check", TEST_PASSWORD, TEST_USER_ID)
            return (
                await api.verify_encryption_key(envelope, TEST_PASSWORD, TEST_USER_ID),
                await api.verify_encryption_key(envelope, "wrong-password", TEST_USER_ID),
                await api.verify_encryption_key(envelope, "", TEST_USER_ID),
            )

        assert asyncio.run(run()) == (True, False, False)

    def test_verify_untagged_value(self):
        """An untagged value has nothing to check against."""
        result = asyncio.run(api.verify_encryption_key("legacy", "anything", TEST_USER_ID))
        assert result is True
