"""
Main Orchestrator for MoneyStack

This module ties the encryption layer to storage and defines the
end-to-end flows for:
1. Load (rows -> decrypt batch -> plaintext records, placeholders on failure)
2. Save (plaintext -> seal -> rows -> storage)
3. Update (row -> decrypt -> modify -> re-seal whole bundle -> storage)
4. Clear-column changes (visibility, classification) that need no key

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing reaches storage without being sealed first
- No protected operation runs without a cached key (MissingKeyError)
- List loads degrade per record; explicit mutations fail loudly with
  a user-facing RecordMutationError
- Every step is audited, without secrets

The key is derived once per logical operation and shared by every record
in that operation.
"""

import asyncio
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from moneystack.audit import AuditLogger, create_correlation_id
from moneystack.crypto.errors import (
    EncryptionError,
    EnvironmentCryptoUnavailableError,
    RecordMutationError,
)
from moneystack.models.records import Account, AccountClassification, Transaction
from moneystack.services.storage import (
    AccountStorageInterface,
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionStorage,
    InMemoryAccountStorage,
    InMemoryTransactionStorage,
    NotFoundError,
    TransactionStorageInterface,
)
from moneystack.session import EncryptionContext, SessionKeyCache
from moneystack.transformers import (
    open_account,
    open_accounts,
    open_transaction,
    open_transactions,
    seal_account,
    seal_transaction,
)


logger = structlog.get_logger(__name__)


class EncryptedDatabase:
    """
    Encrypted view over account and transaction storage for one user.

    Callers work with plaintext Account/Transaction objects only;
    storage works with sealed rows only.
    """

    def __init__(
        self,
        context: EncryptionContext,
        account_storage: Optional[AccountStorageInterface] = None,
        transaction_storage: Optional[TransactionStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._context = context
        self._accounts = account_storage or InMemoryAccountStorage()
        self._transactions = transaction_storage or InMemoryTransactionStorage()
        self._audit_logger = audit_logger

    @property
    def context(self) -> EncryptionContext:
        return self._context

    # -------------------------------------------------------------------------
    # Loads
    # -------------------------------------------------------------------------

    async def load_accounts(self) -> list[Account]:
        """
        Load and decrypt active accounts.

        Raises:
            MissingKeyError: No key cached; the user must sign in again
        """
        key = await self._context.derive_key("load_accounts")
        return await self._load_accounts(key)

    async def load_hidden_accounts(self) -> list[Account]:
        """Load and decrypt accounts the user has hidden."""
        key = await self._context.derive_key("load_hidden_accounts")
        rows = await self._accounts.list_hidden_accounts()
        accounts = await open_accounts(rows, key)
        await self._audit_loaded("account", accounts)
        return accounts

    async def load_transactions(self, account_id: Optional[UUID] = None) -> list[Transaction]:
        """
        Load and decrypt transactions, optionally for one account.

        Raises:
            MissingKeyError: No key cached; the user must sign in again
        """
        key = await self._context.derive_key("load_transactions")
        return await self._load_transactions(key, account_id)

    async def load_all(self) -> tuple[list[Account], list[Transaction]]:
        """Load accounts and transactions concurrently with a single key derivation."""
        key = await self._context.derive_key("load_all")
        accounts, transactions = await asyncio.gather(
            self._load_accounts(key),
            self._load_transactions(key, None),
        )
        return accounts, transactions

    async def _load_accounts(self, key: bytes) -> list[Account]:
        rows = await self._accounts.list_accounts()
        accounts = await open_accounts(rows, key)
        await self._audit_loaded("account", accounts)
        return accounts

    async def _load_transactions(
        self,
        key: bytes,
        account_id: Optional[UUID],
    ) -> list[Transaction]:
        rows = await self._transactions.list_transactions(account_id=account_id)
        transactions = await open_transactions(rows, key)
        await self._audit_loaded("transaction", transactions)
        return transactions

    async def _audit_loaded(self, entity_type: str, records: list) -> None:
        placeholder_ids = [r.id for r in records if r.is_placeholder]
        if placeholder_ids:
            logger.warning(
                "records_loaded_with_placeholders",
                entity_type=entity_type,
                total=len(records),
                placeholders=len(placeholder_ids),
            )
        if self._audit_logger:
            await self._audit_logger.log_records_loaded(
                user_id=self._context.user_id,
                entity_type=entity_type,
                total=len(records),
                placeholder_ids=placeholder_ids,
                correlation_id=create_correlation_id(),
            )

    # -------------------------------------------------------------------------
    # Saves
    # -------------------------------------------------------------------------

    async def save_account(self, account: Account) -> Account:
        """
        Seal and store a new account. Returns the plaintext account.

        Raises:
            MissingKeyError: No key cached
            RecordMutationError: Sealing failed (e.g., payload too large)
            StorageError: Storage rejected the write
        """
        key = await self._context.derive_key("save_account")
        async with self._mutation("save_account", "Failed to save account.", account.id):
            row = await asyncio.to_thread(seal_account, account, key)

        await self._accounts.save_account(row)
        if self._audit_logger:
            await self._audit_logger.log_account_saved(self._context.user_id, account.id)
        return account

    async def save_transactions(self, transactions: list[Transaction]) -> list[Transaction]:
        """
        Seal and store new transactions. Returns the plaintext transactions.

        Raises:
            MissingKeyError: No key cached
            RecordMutationError: Sealing any transaction failed (nothing is written)
            StorageError: Storage rejected the write
        """
        key = await self._context.derive_key("save_transactions")
        async with self._mutation("save_transactions", "Failed to save transactions."):
            rows = await asyncio.gather(
                *(asyncio.to_thread(seal_transaction, t, key) for t in transactions)
            )

        await self._transactions.save_transactions(list(rows))
        if self._audit_logger:
            await self._audit_logger.log_transactions_saved(
                self._context.user_id, len(rows), create_correlation_id()
            )
        return transactions

    # -------------------------------------------------------------------------
    # Single-record updates
    # -------------------------------------------------------------------------

    async def update_account(
        self,
        account_id: UUID,
        name: Optional[str] = None,
        balance: Optional[Decimal] = None,
        notes: Optional[str] = None,
    ) -> Account:
        """
        Change a manual account's name, balance or notes.

        None leaves a field as it is; an empty notes string clears the notes.
        The whole bundle is re-sealed, so a legacy row comes back sealed.

        Raises:
            MissingKeyError: No key cached
            NotFoundError: No such account
            RecordMutationError: Decrypting, validating or sealing failed
        """
        changes = {}
        if name is not None:
            changes["name"] = name
        if balance is not None:
            changes["balance"] = balance
        if notes is not None:
            changes["notes"] = notes or None
        field = ",".join(changes) or "bundle"

        key = await self._context.derive_key("update_account")

        row = await self._accounts.get_account(account_id)
        if row is None:
            raise NotFoundError(f"Account not found: {account_id}")

        async with self._mutation("update_account", "Failed to update account.", account_id):
            current = await asyncio.to_thread(open_account, row, key)
            updated = Account.model_validate({**current.model_dump(), **changes})
            new_row = await asyncio.to_thread(seal_account, updated, key)

        await self._accounts.update_account(new_row)
        if self._audit_logger:
            await self._audit_logger.log_account_updated(
                self._context.user_id, account_id, field
            )
        return updated

    async def update_account_classification(
        self,
        account_id: UUID,
        classification: AccountClassification,
    ) -> bool:
        """
        Mark an account as asset or liability. Returns False if it doesn't exist.

        Classification is stored in the clear, so no key is needed.
        """
        row = await self._accounts.get_account(account_id)
        if row is None:
            return False

        await self._accounts.update_account(
            row.model_copy(update={"classification": AccountClassification(classification)})
        )
        if self._audit_logger:
            await self._audit_logger.log_account_updated(
                self._context.user_id, account_id, "classification"
            )
        return True

    async def update_transaction_category(
        self,
        transaction_id: UUID,
        category_name: str,
    ) -> Transaction:
        """Set a transaction's category (marks it as manually categorized)."""
        return await self._update_transaction(
            transaction_id,
            field="category",
            changes={"category_name": category_name, "is_manual_category": True},
            user_message="Failed to update category.",
        )

    async def update_transaction_notes(
        self,
        transaction_id: UUID,
        notes: Optional[str],
    ) -> Transaction:
        """Set or clear a transaction's notes."""
        return await self._update_transaction(
            transaction_id,
            field="notes",
            changes={"notes": notes or None},
            user_message="Failed to save notes.",
        )

    async def _update_transaction(
        self,
        transaction_id: UUID,
        field: str,
        changes: dict,
        user_message: str,
    ) -> Transaction:
        """
        Decrypt-modify-reencrypt of one transaction's whole bundle.

        A legacy (unencrypted) row comes back sealed.
        """
        key = await self._context.derive_key(f"update_{field}")

        row = await self._transactions.get_transaction(transaction_id)
        if row is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        async with self._mutation(f"update_{field}", user_message, transaction_id):
            current = await asyncio.to_thread(open_transaction, row, key)
            updated = Transaction.model_validate({**current.model_dump(), **changes})
            new_row = await asyncio.to_thread(seal_transaction, updated, key)

        await self._transactions.update_transaction(new_row)
        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(
                self._context.user_id, transaction_id, field
            )
        return updated

    @asynccontextmanager
    async def _mutation(
        self,
        operation: str,
        user_message: str,
        entity_id: Optional[UUID] = None,
    ):
        """
        Turn encryption/validation failures inside the block into a
        RecordMutationError carrying `user_message`.

        MissingKeyError is raised before the block and never wrapped.
        A missing cipher is fatal: it is audited as a system error and
        propagates unwrapped.
        """
        try:
            yield
        except EnvironmentCryptoUnavailableError as e:
            logger.error("crypto_unavailable", operation=operation)
            if self._audit_logger:
                await self._audit_logger.log_error(
                    type(e).__name__, str(e), details={"operation": operation}
                )
            raise
        except RecordMutationError as e:
            await self._mutation_failed(operation, e, entity_id)
            raise
        except (EncryptionError, ValidationError) as e:
            await self._mutation_failed(operation, e, entity_id)
            raise RecordMutationError(
                f"{operation} failed: {type(e).__name__}",
                user_message=user_message,
            ) from e

    async def _mutation_failed(
        self,
        operation: str,
        error: Exception,
        entity_id: Optional[UUID],
    ) -> None:
        logger.error(
            "mutation_failed",
            operation=operation,
            error=type(error).__name__,
            entity_id=str(entity_id) if entity_id else None,
        )
        if self._audit_logger:
            await self._audit_logger.log_mutation_failed(
                self._context.user_id, operation, error, entity_id
            )

    # -------------------------------------------------------------------------
    # Visibility (no decryption needed)
    # -------------------------------------------------------------------------

    async def delete_account(self, account_id: UUID) -> bool:
        """Hide an account. Returns False if it doesn't exist."""
        hidden = await self._accounts.delete_account(account_id)
        if hidden and self._audit_logger:
            await self._audit_logger.log_account_visibility_changed(
                self._context.user_id, account_id, hidden=True
            )
        return hidden

    async def restore_account(self, account_id: UUID) -> bool:
        """Un-hide an account. Returns False if it doesn't exist."""
        restored = await self._accounts.restore_account(account_id)
        if restored and self._audit_logger:
            await self._audit_logger.log_account_visibility_changed(
                self._context.user_id, account_id, hidden=False
            )
        return restored


def create_app_components(
    user_id: str,
    key_cache: Optional[SessionKeyCache] = None,
    use_sheets: bool = False,
) -> tuple[EncryptedDatabase, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components for one user session.

    Args:
        user_id: The signed-in user's stable ID
        key_cache: Session key cache (a fresh in-memory one if None)
        use_sheets: Whether to use Google Sheets storage.
                    Falls back to in-memory storage if it isn't configured.

    Returns:
        (encrypted_database, sheets_client)
    """
    sheets_client = None
    account_storage = None
    transaction_storage = None
    audit_logger = AuditLogger()  # Local-only logging

    if use_sheets:
        try:
            sheets_client = GoogleSheetsClient()
            account_storage = GoogleSheetsAccountStorage(sheets_client)
            transaction_storage = GoogleSheetsTransactionStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("sheets_storage_unavailable", error=str(e))
            sheets_client = None
            account_storage = None
            transaction_storage = None

    context = EncryptionContext(user_id, key_cache=key_cache, audit_logger=audit_logger)
    database = EncryptedDatabase(
        context,
        account_storage=account_storage,
        transaction_storage=transaction_storage,
        audit_logger=audit_logger,
    )
    return database, sheets_client
