"""
Application-facing encryption API.

Thin async wrappers that take (password, user_id), derive the key in a
worker thread and delegate to the envelope codec or record transformers.
Use these for one-off operations. Batch work should derive the key once
(see EncryptedDatabase) instead of calling these in a loop.
"""

import asyncio

from moneystack.crypto import envelope
from moneystack.crypto.envelope import Number, is_encrypted
from moneystack.crypto.errors import DecryptionIntegrityError
from moneystack.crypto.kdf import derive_key
from moneystack.models.records import Account, AccountRow, Transaction, TransactionRow
from moneystack.transformers import records


async def derive_key_async(password: str, user_id: str) -> bytes:
    """Run key derivation off the event loop."""
    return await asyncio.to_thread(derive_key, password, user_id)


async def encrypt_value(plaintext: str, password: str, user_id: str) -> str:
    key = await derive_key_async(password, user_id)
    return envelope.encrypt(plaintext, key)


async def decrypt_value(value: str, password: str, user_id: str) -> str:
    """Decrypt an envelope; untagged values are returned as-is without deriving a key."""
    if not is_encrypted(value):
        return value
    key = await derive_key_async(password, user_id)
    return envelope.decrypt(value, key)


async def encrypt_number(value: Number, password: str, user_id: str) -> str:
    key = await derive_key_async(password, user_id)
    return envelope.encrypt_number(value, key)


async def decrypt_number(value: str, password: str, user_id: str) -> float:
    key = await derive_key_async(password, user_id)
    return envelope.decrypt_number(value, key)


async def encrypt_account(account: Account, password: str, user_id: str) -> AccountRow:
    key = await derive_key_async(password, user_id)
    return records.seal_account(account, key)


async def decrypt_account(row: AccountRow, password: str, user_id: str) -> Account:
    key = await derive_key_async(password, user_id)
    return records.open_account(row, key)


async def encrypt_transaction(
    transaction: Transaction,
    password: str,
    user_id: str,
) -> TransactionRow:
    key = await derive_key_async(password, user_id)
    return records.seal_transaction(transaction, key)


async def decrypt_transaction(
    row: TransactionRow,
    password: str,
    user_id: str,
) -> Transaction:
    key = await derive_key_async(password, user_id)
    return records.open_transaction(row, key)


async def verify_encryption_key(test_envelope: str, password: str, user_id: str) -> bool:
    """
    Check a password by decrypting a known envelope.

    Returns False on a wrong password or damaged envelope. An untagged
    value carries nothing to check against and verifies as True.
    """
    if not password:
        return False
    try:
        await decrypt_value(test_envelope, password, user_id)
    except DecryptionIntegrityError:
        return False
    return True


__all__ = [
    "decrypt_account",
    "decrypt_number",
    "decrypt_transaction",
    "decrypt_value",
    "derive_key_async",
    "encrypt_account",
    "encrypt_number",
    "encrypt_transaction",
    "encrypt_value",
    "is_encrypted",
    "verify_encryption_key",
]
