"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the encryption layer decoupled from storage implementation

CRITICAL: Storage only ever receives AccountRow / TransactionRow objects.
It stores them verbatim and never sees plaintext for protected rows: the
designated text columns hold envelopes and the numeric columns hold zero.
Storage cannot filter or aggregate on sensitive fields; that happens
after decryption.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from moneystack.models.records import AccountRow, TransactionRow
from moneystack.models.audit import AuditEvent


class AccountStorageInterface(ABC):
    """
    Abstract interface for account storage operations.

    Deleting an account hides it (is_active=False); hidden accounts
    can be listed and restored.
    """

    @abstractmethod
    async def save_account(self, row: AccountRow) -> AccountRow:
        """
        Insert a new account row.

        Returns:
            The row as stored

        Raises:
            DuplicateError: If a row with this ID already exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_account(self, account_id: UUID) -> Optional[AccountRow]:
        """
        Retrieve an account row by ID (active or hidden).

        Returns:
            The row if found, None otherwise
        """
        pass

    @abstractmethod
    async def update_account(self, row: AccountRow) -> bool:
        """
        Replace an existing account row.

        Raises:
            NotFoundError: If the account doesn't exist
            StorageError: If update fails
        """
        pass

    @abstractmethod
    async def list_accounts(self) -> list[AccountRow]:
        """List active account rows."""
        pass

    @abstractmethod
    async def list_hidden_accounts(self) -> list[AccountRow]:
        """List hidden (inactive) account rows."""
        pass

    @abstractmethod
    async def delete_account(self, account_id: UUID) -> bool:
        """
        Hide an account.

        Returns:
            True if the account existed
        """
        pass

    @abstractmethod
    async def restore_account(self, account_id: UUID) -> bool:
        """
        Un-hide an account.

        Returns:
            True if the account existed
        """
        pass


class TransactionStorageInterface(ABC):
    """Abstract interface for transaction storage operations."""

    @abstractmethod
    async def save_transactions(self, rows: list[TransactionRow]) -> list[TransactionRow]:
        """
        Insert transaction rows.

        Returns:
            The rows as stored, in input order

        Raises:
            DuplicateError: If any row ID already exists (nothing is written)
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[TransactionRow]:
        """Retrieve a transaction row by ID, or None."""
        pass

    @abstractmethod
    async def update_transaction(self, row: TransactionRow) -> bool:
        """
        Replace an existing transaction row.

        Raises:
            NotFoundError: If the transaction doesn't exist
            StorageError: If update fails
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        account_id: Optional[UUID] = None,
        limit: int = 1000,
        offset: int = 0,
    ) -> list[TransactionRow]:
        """
        List transaction rows, newest first.

        Args:
            account_id: Only rows for this account
            limit: Maximum number of results
            offset: Number of results to skip
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
