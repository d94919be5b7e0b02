"""
In-Memory Storage Implementation

Used in tests and for local runs without a spreadsheet. Rows are deep
copied on the way in and out so callers can't mutate stored state.
"""

from typing import Optional
from uuid import UUID

from moneystack.models.audit import AuditEvent
from moneystack.models.records import AccountRow, TransactionRow
from moneystack.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    TransactionStorageInterface,
)


class InMemoryAccountStorage(AccountStorageInterface):

    def __init__(self):
        self._rows: dict[UUID, AccountRow] = {}

    async def save_account(self, row: AccountRow) -> AccountRow:
        if row.id in self._rows:
            raise DuplicateError(f"Account already exists: {row.id}")
        self._rows[row.id] = row.model_copy(deep=True)
        return row.model_copy(deep=True)

    async def get_account(self, account_id: UUID) -> Optional[AccountRow]:
        row = self._rows.get(account_id)
        return row.model_copy(deep=True) if row else None

    async def update_account(self, row: AccountRow) -> bool:
        if row.id not in self._rows:
            raise NotFoundError(f"Account not found: {row.id}")
        self._rows[row.id] = row.model_copy(deep=True)
        return True

    async def list_accounts(self) -> list[AccountRow]:
        return [r.model_copy(deep=True) for r in self._rows.values() if r.is_active]

    async def list_hidden_accounts(self) -> list[AccountRow]:
        return [r.model_copy(deep=True) for r in self._rows.values() if not r.is_active]

    async def delete_account(self, account_id: UUID) -> bool:
        return self._set_active(account_id, False)

    async def restore_account(self, account_id: UUID) -> bool:
        return self._set_active(account_id, True)

    def _set_active(self, account_id: UUID, active: bool) -> bool:
        row = self._rows.get(account_id)
        if row is None:
            return False
        self._rows[account_id] = row.model_copy(update={"is_active": active})
        return True

    def raw_rows(self) -> list[AccountRow]:
        """Everything as stored, hidden rows included."""
        return [r.model_copy(deep=True) for r in self._rows.values()]


class InMemoryTransactionStorage(TransactionStorageInterface):

    def __init__(self):
        self._rows: dict[UUID, TransactionRow] = {}

    async def save_transactions(self, rows: list[TransactionRow]) -> list[TransactionRow]:
        ids = [row.id for row in rows]
        if len(set(ids)) != len(ids) or any(i in self._rows for i in ids):
            raise DuplicateError("Transaction already exists")
        for row in rows:
            self._rows[row.id] = row.model_copy(deep=True)
        return [row.model_copy(deep=True) for row in rows]

    async def get_transaction(self, transaction_id: UUID) -> Optional[TransactionRow]:
        row = self._rows.get(transaction_id)
        return row.model_copy(deep=True) if row else None

    async def update_transaction(self, row: TransactionRow) -> bool:
        if row.id not in self._rows:
            raise NotFoundError(f"Transaction not found: {row.id}")
        self._rows[row.id] = row.model_copy(deep=True)
        return True

    async def list_transactions(
        self,
        account_id: Optional[UUID] = None,
        limit: int = 1000,
        offset: int = 0,
    ) -> list[TransactionRow]:
        rows = [
            r for r in self._rows.values()
            if account_id is None or r.account_id == account_id
        ]
        rows.sort(key=lambda r: r.transaction_date, reverse=True)
        return [r.model_copy(deep=True) for r in rows[offset:offset + limit]]

    def raw_rows(self) -> list[TransactionRow]:
        return [r.model_copy(deep=True) for r in self._rows.values()]


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)
