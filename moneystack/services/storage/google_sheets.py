"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets works as a storage backend for personal
use because:
1. No database setup required
2. Built-in backup (Google's infrastructure)
3. Easy to export/migrate later

Because rows are sealed before they get here, anyone who can open the
spreadsheet sees only envelopes in the bank_name/description columns and
zeros in the balance/amount columns.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (we handle this with careful ordering)
- Cells hold at most 50,000 characters; envelopes are far below that

The implementation follows the abstract interface, so we can swap
to PostgreSQL/SQLite later without changing the encryption layer.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from moneystack.config import get_settings
from moneystack.models.audit import AuditEvent, AuditEventType, AuditSeverity
from moneystack.models.records import (
    AccountClassification,
    AccountRow,
    Provider,
    TransactionRow,
)
from moneystack.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
)


# Column mappings for Accounts sheet
ACCOUNT_COLUMNS = [
    "id",
    "external_account_id",
    "bank_name",
    "balance",
    "account_number",
    "account_type",
    "classification",
    "currency",
    "provider",
    "is_active",
    "connected_at",
    "last_synced_at",
]

# Column mappings for Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "account_id",
    "external_transaction_id",
    "transaction_date",
    "description",
    "amount",
    "merchant",
    "category_name",
    "notes",
    "is_manual_category",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_accounts_sheet(self) -> gspread.Worksheet:
        """Get or create the Accounts worksheet."""
        return self._get_or_create_sheet(
            self._settings.accounts_sheet_name, ACCOUNT_COLUMNS, rows=500
        )

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create_sheet(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, rows=5000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


def _safe_getter(row: list):
    """Handle missing trailing columns gracefully."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


def _find_row_index(sheet: gspread.Worksheet, entity_id: UUID) -> Optional[int]:
    """1-based sheet row index for an ID, or None. Row 1 is the header."""
    for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
        if row and row[0] == str(entity_id):
            return idx
    return None


class GoogleSheetsAccountStorage(AccountStorageInterface):
    """
    Google Sheets implementation of account storage.

    One account per row; ciphertext columns are written verbatim.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _account_to_row(self, account: AccountRow) -> list:
        return [
            str(account.id),
            account.external_account_id or "",
            account.bank_name,
            str(account.balance),
            account.account_number or "",
            account.account_type,
            account.classification.value,
            account.currency,
            account.provider.value,
            str(account.is_active),
            account.connected_at.isoformat(),
            account.last_synced_at.isoformat() if account.last_synced_at else "",
        ]

    def _row_to_account(self, row: list) -> AccountRow:
        safe_get = _safe_getter(row)
        return AccountRow(
            id=UUID(safe_get(0)),
            external_account_id=safe_get(1) or None,
            bank_name=safe_get(2),
            balance=Decimal(safe_get(3, "0")),
            account_number=safe_get(4) or None,
            account_type=safe_get(5, "checking"),
            classification=AccountClassification(safe_get(6, "asset")),
            currency=safe_get(7, "CAD"),
            provider=Provider(safe_get(8, "manual")),
            is_active=safe_get(9, "True").lower() == "true",
            connected_at=datetime.fromisoformat(safe_get(10)),
            last_synced_at=datetime.fromisoformat(safe_get(11)) if safe_get(11) else None,
        )

    def _all_accounts(self) -> list[AccountRow]:
        sheet = self._client.get_accounts_sheet()
        accounts = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            accounts.append(self._row_to_account(row))
        return accounts

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DuplicateError),
        reraise=True,
    )
    async def save_account(self, row: AccountRow) -> AccountRow:
        try:
            sheet = self._client.get_accounts_sheet()
            if _find_row_index(sheet, row.id) is not None:
                raise DuplicateError(f"Account already exists: {row.id}")
            sheet.append_row(self._account_to_row(row), value_input_option="RAW")
            return row
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save account: {e}")

    async def get_account(self, account_id: UUID) -> Optional[AccountRow]:
        try:
            sheet = self._client.get_accounts_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == str(account_id):
                    return self._row_to_account(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get account: {e}")

    async def update_account(self, row: AccountRow) -> bool:
        try:
            sheet = self._client.get_accounts_sheet()
            idx = _find_row_index(sheet, row.id)
            if idx is None:
                raise NotFoundError(f"Account not found: {row.id}")
            sheet.update(
                range_name=f"A{idx}",
                values=[self._account_to_row(row)],
                value_input_option="RAW",
            )
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update account: {e}")

    async def list_accounts(self) -> list[AccountRow]:
        try:
            return [a for a in self._all_accounts() if a.is_active]
        except Exception as e:
            raise StorageError(f"Failed to list accounts: {e}")

    async def list_hidden_accounts(self) -> list[AccountRow]:
        try:
            return [a for a in self._all_accounts() if not a.is_active]
        except Exception as e:
            raise StorageError(f"Failed to list hidden accounts: {e}")

    async def delete_account(self, account_id: UUID) -> bool:
        return await self._set_active(account_id, False)

    async def restore_account(self, account_id: UUID) -> bool:
        return await self._set_active(account_id, True)

    async def _set_active(self, account_id: UUID, active: bool) -> bool:
        account = await self.get_account(account_id)
        if account is None:
            return False
        return await self.update_account(account.model_copy(update={"is_active": active}))


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """Google Sheets implementation of transaction storage."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, transaction: TransactionRow) -> list:
        return [
            str(transaction.id),
            str(transaction.account_id),
            transaction.external_transaction_id or "",
            transaction.transaction_date.isoformat(),
            transaction.description,
            str(transaction.amount),
            transaction.merchant or "",
            transaction.category_name or "",
            transaction.notes or "",
            str(transaction.is_manual_category),
        ]

    def _row_to_transaction(self, row: list) -> TransactionRow:
        safe_get = _safe_getter(row)
        return TransactionRow(
            id=UUID(safe_get(0)),
            account_id=UUID(safe_get(1)),
            external_transaction_id=safe_get(2) or None,
            transaction_date=date.fromisoformat(safe_get(3)),
            description=safe_get(4),
            amount=Decimal(safe_get(5, "0")),
            merchant=safe_get(6) or None,
            category_name=safe_get(7) or None,
            notes=safe_get(8) or None,
            is_manual_category=safe_get(9).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DuplicateError),
        reraise=True,
    )
    async def save_transactions(self, rows: list[TransactionRow]) -> list[TransactionRow]:
        try:
            sheet = self._client.get_transactions_sheet()
            existing = {row[0] for row in sheet.get_all_values()[1:] if row}
            if any(str(r.id) in existing for r in rows):
                raise DuplicateError("Transaction already exists")
            if rows:
                sheet.append_rows(
                    [self._transaction_to_row(r) for r in rows],
                    value_input_option="RAW",
                )
            return rows
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transactions: {e}")

    async def get_transaction(self, transaction_id: UUID) -> Optional[TransactionRow]:
        try:
            sheet = self._client.get_transactions_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == str(transaction_id):
                    return self._row_to_transaction(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def update_transaction(self, row: TransactionRow) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            idx = _find_row_index(sheet, row.id)
            if idx is None:
                raise NotFoundError(f"Transaction not found: {row.id}")
            sheet.update(
                range_name=f"A{idx}",
                values=[self._transaction_to_row(row)],
                value_input_option="RAW",
            )
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def list_transactions(
        self,
        account_id: Optional[UUID] = None,
        limit: int = 1000,
        offset: int = 0,
    ) -> list[TransactionRow]:
        try:
            sheet = self._client.get_transactions_sheet()
            transactions = []
            for row in sheet.get_all_values()[1:]:
                if not row or not row[0]:
                    continue
                if account_id and (len(row) < 2 or row[1] != str(account_id)):
                    continue
                transactions.append(self._row_to_transaction(row))

            # Newest first
            transactions.sort(key=lambda t: t.transaction_date, reverse=True)
            return transactions[offset:offset + limit]
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        safe_get = _safe_getter(row)
        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            user_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_code=safe_get(10) or None,
            error_message=safe_get(11) or None,
            is_user_action=safe_get(12).lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if row and row[0]:
                events.append(self._row_to_event(row))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._all_events() if e.correlation_id == correlation_id]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._all_events()
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
