"""
Record Transformers

Map plaintext Account/Transaction models to the rows storage sees, and back.

DESIGN DECISION: All sensitive fields of a record go into ONE envelope:
- Account: {name, balance, notes} -> bank_name column, balance column = 0
- Transaction: {description, amount, merchant, category_name, notes}
  -> description column, amount column = 0, other text columns cleared

One envelope per record avoids per-field nonce/tag overhead and does not
reveal which optional fields are populated. The cost: changing any one
field means decrypt-modify-reencrypt of the whole bundle.

Account numbers are sealed separately since they are rarely displayed.

Detection is per record: each row is independently legacy or protected.

FAILURE POLICY:
- open_account()/open_transaction() raise codec errors (single-record use)
- open_accounts()/open_transactions() substitute clearly marked
  placeholders for records that fail and keep going (list views)
"""

import asyncio
from decimal import Decimal
from typing import Optional, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from moneystack.config import get_settings
from moneystack.crypto.envelope import decrypt, encrypt
from moneystack.crypto.errors import (
    DecryptionIntegrityError,
    EnvelopeTooLargeError,
    MalformedEnvelopeError,
)
from moneystack.models.protected import Plaintext, inspect_column
from moneystack.models.records import (
    Account,
    AccountRow,
    AccountSecrets,
    Transaction,
    TransactionRow,
    TransactionSecrets,
)
from moneystack.transformers.payload import invalid_fields, open_payload, seal_payload


ACCOUNT_PLACEHOLDER_NAME = "[Encrypted - wrong password?]"
TRANSACTION_PLACEHOLDER_DESCRIPTION = "[Encrypted]"
SENTINEL_ZERO = Decimal("0")

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


def _check_width(envelope: str, max_envelope_length: Optional[int]) -> str:
    if max_envelope_length is None:
        max_envelope_length = get_settings().encryption.max_envelope_length
    if len(envelope) > max_envelope_length:
        raise EnvelopeTooLargeError(len(envelope), max_envelope_length)
    return envelope


def _build(model: type[RecordT], **fields) -> RecordT:
    """
    Validate a decrypted record.

    Stored values that break the model (a blank legacy name, an over-long
    description) are reported by field name only, as a malformed record.
    """
    try:
        return model.model_validate(fields)
    except ValidationError as e:
        raise MalformedEnvelopeError(
            f"Stored record failed validation: {invalid_fields(e)}"
        ) from None


# =============================================================================
# ACCOUNTS
# =============================================================================

def seal_account(
    account: Account,
    key: bytes,
    max_envelope_length: Optional[int] = None,
) -> AccountRow:
    """
    Convert a plaintext account into its storage row.

    Raises:
        EnvelopeTooLargeError: If the sealed bundle is wider than the column
    """
    secrets = AccountSecrets(
        name=account.name,
        balance=account.balance,
        notes=account.notes,
    )
    bank_name = _check_width(seal_payload(secrets, key), max_envelope_length)
    account_number = None
    if account.account_number:
        account_number = _check_width(
            encrypt(account.account_number, key), max_envelope_length
        )

    return AccountRow(
        id=account.id,
        external_account_id=account.external_account_id,
        bank_name=bank_name,
        balance=SENTINEL_ZERO,
        account_number=account_number,
        account_type=account.account_type,
        classification=account.classification,
        currency=account.currency,
        provider=account.provider,
        is_active=account.is_active,
        connected_at=account.connected_at,
        last_synced_at=account.last_synced_at,
    )


def open_account(row: AccountRow, key: bytes) -> Account:
    """
    Convert a storage row back into a plaintext account.

    Legacy rows (untagged bank_name) pass through unchanged.

    Raises:
        DecryptionIntegrityError: Wrong key or tampered data
        MalformedEnvelopeError: Envelope, payload or stored values are invalid
    """
    column = inspect_column(row.bank_name)
    account_number = decrypt(row.account_number, key) if row.account_number else None

    if isinstance(column, Plaintext):
        name, balance, notes = column.value, row.balance, None
    else:
        secrets = open_payload(column.envelope, key, AccountSecrets)
        name, balance, notes = secrets.name, secrets.balance, secrets.notes

    return _build(
        Account,
        id=row.id,
        external_account_id=row.external_account_id,
        name=name,
        balance=balance,
        notes=notes,
        account_number=account_number,
        account_type=row.account_type,
        classification=row.classification,
        currency=row.currency,
        provider=row.provider,
        is_active=row.is_active,
        connected_at=row.connected_at,
        last_synced_at=row.last_synced_at,
    )


def account_placeholder(row: AccountRow) -> Account:
    """Stand-in for an account that could not be decrypted."""
    # Unvalidated: the row's clear columns may be what failed
    return Account.model_construct(
        id=row.id,
        external_account_id=row.external_account_id,
        name=ACCOUNT_PLACEHOLDER_NAME,
        balance=SENTINEL_ZERO,
        account_type=row.account_type,
        classification=row.classification,
        currency=row.currency,
        provider=row.provider,
        is_active=row.is_active,
        connected_at=row.connected_at,
        last_synced_at=row.last_synced_at,
        is_placeholder=True,
    )


def _open_account_or_placeholder(row: AccountRow, key: bytes) -> Account:
    try:
        return open_account(row, key)
    except DecryptionIntegrityError as e:
        logger.warning(
            "record_decryption_failed",
            entity_type="account",
            entity_id=str(row.id),
            error=type(e).__name__,
        )
        return account_placeholder(row)


async def open_accounts(rows: list[AccountRow], key: bytes) -> list[Account]:
    """
    Decrypt a batch of account rows concurrently.

    A record that fails to decrypt becomes a placeholder; the batch
    never raises for a single bad record.
    """
    results = await asyncio.gather(
        *(asyncio.to_thread(_open_account_or_placeholder, row, key) for row in rows)
    )
    return list(results)


# =============================================================================
# TRANSACTIONS
# =============================================================================

def seal_transaction(
    transaction: Transaction,
    key: bytes,
    max_envelope_length: Optional[int] = None,
) -> TransactionRow:
    """
    Convert a plaintext transaction into its storage row.

    Raises:
        EnvelopeTooLargeError: If the sealed bundle is wider than the column
    """
    secrets = TransactionSecrets(
        description=transaction.description,
        amount=transaction.amount,
        merchant=transaction.merchant,
        category_name=transaction.category_name,
        notes=transaction.notes,
    )
    description = _check_width(seal_payload(secrets, key), max_envelope_length)

    return TransactionRow(
        id=transaction.id,
        account_id=transaction.account_id,
        external_transaction_id=transaction.external_transaction_id,
        transaction_date=transaction.transaction_date,
        description=description,
        amount=SENTINEL_ZERO,
        merchant=None,
        category_name=None,
        notes=None,
        is_manual_category=transaction.is_manual_category,
    )


def open_transaction(row: TransactionRow, key: bytes) -> Transaction:
    """
    Convert a storage row back into a plaintext transaction.

    Legacy rows (untagged description) pass through unchanged.

    Raises:
        DecryptionIntegrityError: Wrong key or tampered data
        MalformedEnvelopeError: Envelope, payload or stored values are invalid
    """
    column = inspect_column(row.description)

    if isinstance(column, Plaintext):
        return _build(
            Transaction,
            id=row.id,
            account_id=row.account_id,
            external_transaction_id=row.external_transaction_id,
            transaction_date=row.transaction_date,
            description=column.value,
            amount=row.amount,
            merchant=row.merchant,
            category_name=row.category_name,
            notes=row.notes,
            is_manual_category=row.is_manual_category,
        )

    secrets = open_payload(column.envelope, key, TransactionSecrets)
    return _build(
        Transaction,
        id=row.id,
        account_id=row.account_id,
        external_transaction_id=row.external_transaction_id,
        transaction_date=row.transaction_date,
        description=secrets.description,
        amount=secrets.amount,
        merchant=secrets.merchant,
        category_name=secrets.category_name,
        notes=secrets.notes,
        is_manual_category=row.is_manual_category,
    )


def transaction_placeholder(row: TransactionRow) -> Transaction:
    """Stand-in for a transaction that could not be decrypted."""
    return Transaction.model_construct(
        id=row.id,
        account_id=row.account_id,
        external_transaction_id=row.external_transaction_id,
        transaction_date=row.transaction_date,
        description=TRANSACTION_PLACEHOLDER_DESCRIPTION,
        amount=SENTINEL_ZERO,
        is_manual_category=row.is_manual_category,
        is_placeholder=True,
    )


def _open_transaction_or_placeholder(row: TransactionRow, key: bytes) -> Transaction:
    try:
        return open_transaction(row, key)
    except DecryptionIntegrityError as e:
        logger.warning(
            "record_decryption_failed",
            entity_type="transaction",
            entity_id=str(row.id),
            error=type(e).__name__,
        )
        return transaction_placeholder(row)


async def open_transactions(rows: list[TransactionRow], key: bytes) -> list[Transaction]:
    """
    Decrypt a batch of transaction rows concurrently.

    A record that fails to decrypt becomes a placeholder; the batch
    never raises for a single bad record.
    """
    results = await asyncio.gather(
        *(asyncio.to_thread(_open_transaction_or_placeholder, row, key) for row in rows)
    )
    return list(results)
