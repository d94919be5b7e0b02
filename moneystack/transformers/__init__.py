"""Record transformers package."""

from moneystack.transformers.payload import open_payload, seal_payload
from moneystack.transformers.records import (
    ACCOUNT_PLACEHOLDER_NAME,
    TRANSACTION_PLACEHOLDER_DESCRIPTION,
    account_placeholder,
    open_account,
    open_accounts,
    open_transaction,
    open_transactions,
    seal_account,
    seal_transaction,
    transaction_placeholder,
)

__all__ = [
    "ACCOUNT_PLACEHOLDER_NAME",
    "TRANSACTION_PLACEHOLDER_DESCRIPTION",
    "account_placeholder",
    "open_account",
    "open_accounts",
    "open_payload",
    "open_transaction",
    "open_transactions",
    "seal_account",
    "seal_payload",
    "seal_transaction",
    "transaction_placeholder",
]
