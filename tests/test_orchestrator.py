"""
Integration tests for EncryptedDatabase.

Runs the full load/save/update flows against in-memory storage.
"""

import asyncio
import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from moneystack import orchestrator
from moneystack.audit import AuditLogger
from moneystack.crypto import (
    EnvironmentCryptoUnavailableError,
    MissingKeyError,
    RecordMutationError,
    decrypt,
    derive_key,
    is_encrypted,
)
from moneystack.models import (
    Account,
    AccountClassification,
    AccountRow,
    AuditEventType,
    AuditSeverity,
    Transaction,
    TransactionRow,
)
from moneystack.orchestrator import EncryptedDatabase, create_app_components
from moneystack.services.storage import (
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
    NotFoundError,
)
from moneystack.session import EncryptionContext
from moneystack.transformers import ACCOUNT_PLACEHOLDER_NAME, seal_account


USER_ID = "user-42"
PASSWORD = "CorrectHorse8!"


class Harness:
    """An EncryptedDatabase wired to in-memory storage, with handles on everything."""

    def __init__(self):
        self.accounts = InMemoryAccountStorage()
        self.transactions = InMemoryTransactionStorage()
        self.audit = InMemoryAuditStorage()
        logger = AuditLogger(self.audit)
        self.context = EncryptionContext(USER_ID, audit_logger=logger)
        self.db = EncryptedDatabase(
            self.context,
            account_storage=self.accounts,
            transaction_storage=self.transactions,
            audit_logger=logger,
        )

    def run(self, coro):
        return asyncio.run(coro)

    def sign_in(self, password: str = PASSWORD) -> None:
        self.run(self.context.begin_session(password))

    def event_types(self) -> list:
        return [e.event_type for e in self.audit.events]


@pytest.fixture
def harness() -> Harness:
    h = Harness()
    h.sign_in()
    return h


def _transaction(account_id, **overrides) -> Transaction:
    fields = {
        "account_id": account_id,
        "transaction_date": date(2024, 5, 1),
        "description": "COSTCO WHOLESALE",
        "amount": Decimal("-152.37"),
        "merchant": "Costco",
    }
    fields.update(overrides)
    return Transaction(**fields)


class TestLoadAndSave:
    """Tests for saving and loading encrypted records."""

    def test_save_then_load_account(self, harness):
        """Saved accounts are sealed at rest and plaintext on load."""
        account = Account(name="Scotiabank Chequing", balance=Decimal("2500.00"))
        returned = harness.run(harness.db.save_account(account))
        assert returned == account

        (row,) = harness.accounts.raw_rows()
        assert is_encrypted(row.bank_name)
        assert row.balance == Decimal("0")

        assert harness.run(harness.db.load_accounts()) == [account]

    def test_save_then_load_transactions(self, harness):
        """Transactions round-trip and load newest first."""
        account_id = uuid4()
        older = _transaction(account_id, transaction_date=date(2024, 1, 1))
        newer = _transaction(account_id, transaction_date=date(2024, 2, 1), notes="bulk")
        harness.run(harness.db.save_transactions([older, newer]))

        for row in harness.transactions.raw_rows():
            assert is_encrypted(row.description)
            assert row.amount == Decimal("0")
            assert row.merchant is None

        loaded = harness.run(harness.db.load_transactions())
        assert loaded == [newer, older]

    def test_load_transactions_for_account(self, harness):
        """Filtering by account happens on clear columns."""
        first, second = uuid4(), uuid4()
        harness.run(harness.db.save_transactions([
            _transaction(first),
            _transaction(second),
        ]))
        loaded = harness.run(harness.db.load_transactions(account_id=first))
        assert [t.account_id for t in loaded] == [first]

    def test_load_all(self, harness):
        """Accounts and transactions load together."""
        account = Account(name="Savings", account_type="savings")
        harness.run(harness.db.save_account(account))
        harness.run(harness.db.save_transactions([_transaction(account.id)]))

        accounts, transactions = harness.run(harness.db.load_all())
        assert accounts == [account]
        assert len(transactions) == 1
        assert transactions[0].account_id == account.id

    def test_legacy_rows_load(self, harness):
        """Rows written before encryption load alongside sealed ones."""
        harness.run(harness.accounts.save_account(
            AccountRow(id=uuid4(), bank_name="Old Bank", balance=Decimal("10"))
        ))
        harness.run(harness.db.save_account(Account(name="New Bank")))

        names = sorted(a.name for a in harness.run(harness.db.load_accounts()))
        assert names == ["New Bank", "Old Bank"]

    def test_wrong_password_degrades_to_placeholders(self, harness):
        """Loading with the wrong password shows placeholders and audits them."""
        harness.run(harness.db.save_account(Account(name="Chequing", balance=Decimal("5"))))
        harness.sign_in("a-different-password")

        (account,) = harness.run(harness.db.load_accounts())
        assert account.is_placeholder is True
        assert account.name == ACCOUNT_PLACEHOLDER_NAME
        assert account.balance == Decimal("0")

        failed = [
            e for e in harness.audit.events
            if e.event_type == AuditEventType.RECORD_DECRYPTION_FAILED
        ]
        assert len(failed) == 1
        assert failed[0].entity_id == account.id
        loaded = [
            e for e in harness.audit.events
            if e.event_type == AuditEventType.ACCOUNTS_LOADED
        ]
        assert loaded[-1].severity == AuditSeverity.WARNING
        assert loaded[-1].details == {"total": 1, "placeholders": 1}

    def test_one_bad_record_does_not_block_the_rest(self, harness):
        """A single corrupted row among good ones."""
        for i in range(9):
            harness.run(harness.db.save_account(Account(name=f"Account {i}")))
        foreign_key = derive_key(PASSWORD, "user-43")
        harness.run(harness.accounts.save_account(
            seal_account(Account(name="Foreign"), foreign_key)
        ))

        accounts = harness.run(harness.db.load_accounts())
        assert len(accounts) == 10
        assert sum(a.is_placeholder for a in accounts) == 1

    def test_invalid_legacy_row_loads_as_placeholder(self, harness):
        """A stored row the model rejects degrades without hiding the others."""
        harness.run(harness.accounts.save_account(AccountRow(id=uuid4(), bank_name="")))
        harness.run(harness.db.save_account(Account(name="Chequing")))

        accounts = harness.run(harness.db.load_accounts())
        assert sorted(a.name for a in accounts) == sorted([ACCOUNT_PLACEHOLDER_NAME, "Chequing"])
        assert AuditEventType.RECORD_DECRYPTION_FAILED in harness.event_types()

    def test_missing_key_blocks_everything(self):
        """No session means no loads and no saves."""
        h = Harness()
        with pytest.raises(MissingKeyError):
            h.run(h.db.load_accounts())
        with pytest.raises(MissingKeyError):
            h.run(h.db.save_account(Account(name="Chequing")))
        assert h.accounts.raw_rows() == []
        assert AuditEventType.MISSING_KEY in h.event_types()

    def test_save_too_large_is_mutation_error(self, harness, monkeypatch):
        """An oversize bundle is refused before storage."""
        monkeypatch.setenv("MONEYSTACK_ENCRYPTION_MAX_ENVELOPE_LENGTH", "64")
        with pytest.raises(RecordMutationError) as exc:
            harness.run(harness.db.save_account(Account(name="Chequing", notes="n" * 500)))
        assert "too large" in exc.value.user_message
        assert harness.accounts.raw_rows() == []
        assert AuditEventType.MUTATION_FAILED in harness.event_types()

    def test_crypto_unavailable_is_system_error(self, harness, monkeypatch):
        """A missing cipher propagates as-is and is audited as a system error."""
        def unavailable(account, key):
            raise EnvironmentCryptoUnavailableError("AES-GCM unavailable")

        monkeypatch.setattr(orchestrator, "seal_account", unavailable)
        with pytest.raises(EnvironmentCryptoUnavailableError):
            harness.run(harness.db.save_account(Account(name="Chequing")))

        assert harness.accounts.raw_rows() == []
        event = harness.audit.events[-1]
        assert event.event_type == AuditEventType.SYSTEM_ERROR
        assert event.details == {"operation": "save_account"}
        assert AuditEventType.MUTATION_FAILED not in harness.event_types()


class TestUpdates:
    """Tests for single-field updates (decrypt-modify-reencrypt)."""

    def _saved(self, harness, **overrides) -> Transaction:
        transaction = _transaction(uuid4(), **overrides)
        harness.run(harness.db.save_transactions([transaction]))
        return transaction

    def test_add_notes(self, harness):
        """Adding a note re-seals the whole bundle with everything else intact."""
        original = self._saved(harness)
        before = harness.run(harness.transactions.get_transaction(original.id))

        updated = harness.run(harness.db.update_transaction_notes(original.id, "Business lunch"))

        assert updated.notes == "Business lunch"
        assert updated.description == original.description
        assert updated.amount == original.amount
        assert updated.merchant == original.merchant

        after = harness.run(harness.transactions.get_transaction(original.id))
        assert after.description != before.description
        assert after.notes is None
        key = derive_key(PASSWORD, USER_ID)
        assert json.loads(decrypt(after.description, key))["notes"] == "Business lunch"

        (loaded,) = harness.run(harness.db.load_transactions())
        assert loaded == updated

    def test_clear_notes(self, harness):
        """An empty note clears the field."""
        original = self._saved(harness, notes="old note")
        updated = harness.run(harness.db.update_transaction_notes(original.id, ""))
        assert updated.notes is None

    def test_update_category(self, harness):
        """Setting a category marks it as manual."""
        original = self._saved(harness)
        updated = harness.run(harness.db.update_transaction_category(original.id, "Groceries"))
        assert updated.category_name == "Groceries"
        assert updated.is_manual_category is True

        row = harness.run(harness.transactions.get_transaction(original.id))
        assert row.category_name is None
        assert row.is_manual_category is True
        assert AuditEventType.TRANSACTION_UPDATED in harness.event_types()

    def test_update_legacy_row_seals_it(self, harness):
        """Touching a legacy row writes it back encrypted."""
        row = TransactionRow(
            id=uuid4(),
            account_id=uuid4(),
            transaction_date=date(2022, 6, 1),
            description="HYDRO ONE",
            amount=Decimal("-80.00"),
            merchant="Hydro One",
        )
        harness.run(harness.transactions.save_transactions([row]))

        updated = harness.run(harness.db.update_transaction_notes(row.id, "June bill"))
        assert updated.description == "HYDRO ONE"
        assert updated.merchant == "Hydro One"

        stored = harness.run(harness.transactions.get_transaction(row.id))
        assert is_encrypted(stored.description)
        assert stored.amount == Decimal("0")
        assert stored.merchant is None

    def test_update_with_wrong_password_fails_loudly(self, harness):
        """Explicit mutations never fall back to placeholders."""
        original = self._saved(harness)
        before = harness.run(harness.transactions.get_transaction(original.id))
        harness.sign_in("a-different-password")

        with pytest.raises(RecordMutationError) as exc:
            harness.run(harness.db.update_transaction_notes(original.id, "note"))

        assert exc.value.user_message == "Failed to save notes."
        assert harness.run(harness.transactions.get_transaction(original.id)) == before
        failed = [
            e for e in harness.audit.events
            if e.event_type == AuditEventType.MUTATION_FAILED
        ]
        assert failed[-1].error_code == "DecryptionIntegrityError"
        assert failed[-1].entity_id == original.id

    def test_category_failure_message(self, harness):
        """Category updates carry their own user message."""
        original = self._saved(harness)
        harness.sign_in("a-different-password")
        with pytest.raises(RecordMutationError) as exc:
            harness.run(harness.db.update_transaction_category(original.id, "Dining"))
        assert exc.value.user_message == "Failed to update category."

    def test_notes_too_long(self, harness):
        """Invalid new values are a mutation error, and nothing is written."""
        original = self._saved(harness)
        before = harness.run(harness.transactions.get_transaction(original.id))
        with pytest.raises(RecordMutationError):
            harness.run(harness.db.update_transaction_notes(original.id, "x" * 1001))
        assert harness.run(harness.transactions.get_transaction(original.id)) == before

    def test_update_unknown_transaction(self, harness):
        """Updating a missing row is a storage error, not a crypto one."""
        with pytest.raises(NotFoundError):
            harness.run(harness.db.update_transaction_notes(uuid4(), "note"))

    def test_update_without_session(self):
        """Missing key is reported as such, not wrapped."""
        h = Harness()
        with pytest.raises(MissingKeyError):
            h.run(h.db.update_transaction_notes(uuid4(), "note"))


class TestAccountUpdates:
    """Tests for editing manual accounts."""

    def _saved(self, harness, **overrides) -> Account:
        fields = {
            "name": "Chequing",
            "balance": Decimal("1500.50"),
            "notes": "primary",
            "account_number": "****1234",
        }
        fields.update(overrides)
        account = Account(**fields)
        harness.run(harness.db.save_account(account))
        return account

    def test_update_balance_and_notes(self, harness):
        """Changed fields are re-sealed; untouched ones survive."""
        original = self._saved(harness)
        before = harness.run(harness.accounts.get_account(original.id))

        updated = harness.run(harness.db.update_account(
            original.id, balance=Decimal("1750.00"), notes="moved payroll here"
        ))

        assert updated.name == "Chequing"
        assert updated.balance == Decimal("1750.00")
        assert updated.notes == "moved payroll here"
        assert updated.account_number == "****1234"

        after = harness.run(harness.accounts.get_account(original.id))
        assert after.bank_name != before.bank_name
        assert after.balance == Decimal("0")
        assert "moved payroll" not in after.model_dump_json()

        (loaded,) = harness.run(harness.db.load_accounts())
        assert loaded == updated
        (event,) = [
            e for e in harness.audit.events
            if e.event_type == AuditEventType.ACCOUNT_UPDATED
        ]
        assert event.entity_id == original.id
        assert event.details == {"field": "balance,notes"}

    def test_rename_and_clear_notes(self, harness):
        """An empty notes string clears them."""
        original = self._saved(harness)
        updated = harness.run(harness.db.update_account(original.id, name="Joint", notes=""))
        assert updated.name == "Joint"
        assert updated.notes is None
        assert updated.balance == original.balance

    def test_update_legacy_account_seals_it(self, harness):
        """Editing a plaintext row writes it back encrypted."""
        row = AccountRow(id=uuid4(), bank_name="TD Chequing", balance=Decimal("250.00"))
        harness.run(harness.accounts.save_account(row))

        updated = harness.run(harness.db.update_account(row.id, notes="old account"))
        assert updated.name == "TD Chequing"
        assert updated.balance == Decimal("250.00")

        stored = harness.run(harness.accounts.get_account(row.id))
        assert is_encrypted(stored.bank_name)
        assert stored.balance == Decimal("0")

    def test_update_with_wrong_password_fails_loudly(self, harness):
        """A key mismatch is a mutation error and nothing is written."""
        original = self._saved(harness)
        before = harness.run(harness.accounts.get_account(original.id))
        harness.sign_in("a-different-password")

        with pytest.raises(RecordMutationError) as exc:
            harness.run(harness.db.update_account(original.id, balance=Decimal("1")))

        assert exc.value.user_message == "Failed to update account."
        assert harness.run(harness.accounts.get_account(original.id)) == before
        assert AuditEventType.MUTATION_FAILED in harness.event_types()

    def test_blank_name_rejected(self, harness):
        """Invalid new values leave the stored row alone."""
        original = self._saved(harness)
        before = harness.run(harness.accounts.get_account(original.id))
        with pytest.raises(RecordMutationError):
            harness.run(harness.db.update_account(original.id, name="   "))
        assert harness.run(harness.accounts.get_account(original.id)) == before

    def test_update_unknown_account(self, harness):
        """Missing rows are a storage error."""
        with pytest.raises(NotFoundError):
            harness.run(harness.db.update_account(uuid4(), name="Ghost"))

    def test_update_classification(self, harness):
        """Classification changes in the clear and is audited."""
        original = self._saved(harness, account_type="savings")
        assert original.classification == AccountClassification.ASSET

        changed = harness.run(harness.db.update_account_classification(
            original.id, AccountClassification.LIABILITY
        ))

        assert changed is True
        stored = harness.run(harness.accounts.get_account(original.id))
        assert stored.classification == AccountClassification.LIABILITY
        (loaded,) = harness.run(harness.db.load_accounts())
        assert loaded.classification == AccountClassification.LIABILITY
        assert loaded.name == "Chequing"
        assert AuditEventType.ACCOUNT_UPDATED in harness.event_types()

    def test_update_classification_without_session(self):
        """Clear columns can change without a key."""
        h = Harness()
        row = AccountRow(id=uuid4(), bank_name="ENC:sealed-elsewhere")
        h.run(h.accounts.save_account(row))
        assert h.run(h.db.update_account_classification(row.id, "liability")) is True
        assert h.run(h.db.update_account_classification(uuid4(), "asset")) is False


class TestVisibility:
    """Tests for hiding and restoring accounts."""

    def test_delete_and_restore(self, harness):
        """Hidden accounts move between the two lists."""
        account = Account(name="Old Visa", account_type="credit card")
        harness.run(harness.db.save_account(account))

        assert harness.run(harness.db.delete_account(account.id)) is True
        assert harness.run(harness.db.load_accounts()) == []
        (hidden,) = harness.run(harness.db.load_hidden_accounts())
        assert hidden.name == "Old Visa"
        assert hidden.is_active is False

        assert harness.run(harness.db.restore_account(account.id)) is True
        assert [a.id for a in harness.run(harness.db.load_accounts())] == [account.id]
        assert AuditEventType.ACCOUNT_DELETED in harness.event_types()
        assert AuditEventType.ACCOUNT_RESTORED in harness.event_types()

    def test_delete_unknown(self, harness):
        """Unknown IDs report False."""
        assert harness.run(harness.db.delete_account(uuid4())) is False


class TestAppComponents:
    """Tests for the component factory."""

    def test_in_memory_by_default(self):
        """Without Sheets, everything runs in memory."""
        db, sheets = create_app_components(USER_ID)
        assert sheets is None
        assert db.context.user_id == USER_ID

        async def run():
            await db.context.begin_session(PASSWORD)
            await db.save_account(Account(name="Chequing"))
            return await db.load_accounts()

        assert [a.name for a in asyncio.run(run())] == ["Chequing"]

    def test_sheets_unconfigured_falls_back(self, monkeypatch):
        """Missing Sheets config falls back to in-memory storage."""
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        db, sheets = create_app_components(USER_ID, use_sheets=True)
        assert sheets is None
        assert isinstance(db, EncryptedDatabase)
