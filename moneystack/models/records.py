"""
Financial Record Models for MoneyStack

Each protected entity has two shapes:
1. The plaintext model (Account, Transaction) the application works with
2. The row model (AccountRow, TransactionRow) that storage actually sees

CRITICAL: Row models are the ONLY shape that reaches storage. For a
protected row, the designated text column holds an envelope and the
numeric column holds a zero sentinel. Legacy rows (written before
encryption) hold plaintext in the same columns.

The *Secrets models are the explicit, versioned payloads bundled into a
single envelope per record.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Provider(str, Enum):
    """Where an account came from."""
    PLAID = "plaid"
    FLINKS = "flinks"
    MANUAL = "manual"


class AccountClassification(str, Enum):
    """Whether an account counts toward assets or liabilities."""
    ASSET = "asset"
    LIABILITY = "liability"


LIABILITY_KEYWORDS = (
    "credit",
    "loan",
    "mortgage",
    "line of credit",
    "overdraft",
    "student",
)


def classify_account_type(account_type: str) -> AccountClassification:
    """
    Auto-classify an account from its type name.

    Anything that doesn't look like debt is an asset.
    """
    lowered = account_type.lower()
    if any(keyword in lowered for keyword in LIABILITY_KEYWORDS):
        return AccountClassification.LIABILITY
    return AccountClassification.ASSET


# =============================================================================
# ACCOUNTS
# =============================================================================

class Account(BaseModel):
    """
    A bank or manual account in plaintext form.

    Sensitive: name, balance, notes, account_number.
    Everything else is stored in the clear.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique account ID"
    )
    external_account_id: Optional[str] = Field(
        default=None,
        max_length=200,
        description="ID from the aggregation provider"
    )

    # Sensitive fields
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Account display name (usually the bank name)"
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Current balance"
    )
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
        description="User notes about this account"
    )
    account_number: Optional[str] = Field(
        default=None,
        max_length=50,
        description="Masked or full account number"
    )

    # Non-sensitive fields
    account_type: str = Field(
        default="checking",
        max_length=50,
        description="Account type (checking, savings, credit card...)"
    )
    classification: Optional[AccountClassification] = Field(
        default=None,
        description="Asset or liability; derived from account_type if omitted"
    )
    currency: str = Field(
        default="CAD",
        min_length=3,
        max_length=3,
        description="ISO currency code"
    )
    provider: Provider = Field(
        default=Provider.MANUAL,
        description="Where this account came from"
    )
    is_active: bool = Field(
        default=True,
        description="False when the user has hidden the account"
    )
    connected_at: datetime = Field(
        default_factory=_utcnow,
        description="When the account was linked or created"
    )
    last_synced_at: Optional[datetime] = None

    # Set only when the stored row could not be decrypted
    is_placeholder: bool = Field(
        default=False,
        description="True if this is a stand-in for an undecryptable record"
    )

    @model_validator(mode='after')
    def fill_classification(self) -> 'Account':
        """Derive classification from the account type when not given."""
        if self.classification is None:
            self.classification = classify_account_type(self.account_type)
        return self


class AccountRow(BaseModel):
    """
    An account as persisted.

    bank_name holds plaintext (legacy) or an envelope bundling
    name/balance/notes. balance holds the real value (legacy) or 0.
    account_number holds plaintext (legacy) or its own envelope.
    """

    id: UUID
    external_account_id: Optional[str] = None
    bank_name: str
    balance: Decimal = Decimal("0")
    account_number: Optional[str] = None
    account_type: str = "checking"
    classification: AccountClassification = AccountClassification.ASSET
    currency: str = "CAD"
    provider: Provider = Provider.MANUAL
    is_active: bool = True
    connected_at: datetime = Field(default_factory=_utcnow)
    last_synced_at: Optional[datetime] = None


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(BaseModel):
    """
    A transaction in plaintext form.

    Sensitive: description, amount, merchant, category_name, notes.
    Negative amounts are outflows.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    account_id: UUID = Field(
        ...,
        description="Account this transaction belongs to"
    )
    external_transaction_id: Optional[str] = Field(
        default=None,
        max_length=200,
        description="ID from the aggregation provider"
    )
    transaction_date: date = Field(
        ...,
        description="Posting date"
    )

    # Sensitive fields
    description: str = Field(
        ...,
        max_length=500,
        description="Bank description of the transaction"
    )
    amount: Decimal = Field(
        ...,
        description="Signed amount (negative = money out)"
    )
    merchant: Optional[str] = Field(
        default=None,
        max_length=200
    )
    category_name: Optional[str] = Field(
        default=None,
        max_length=100
    )
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
        description="User notes about this transaction"
    )

    is_manual_category: bool = Field(
        default=False,
        description="True if the user picked the category by hand"
    )
    is_placeholder: bool = Field(
        default=False,
        description="True if this is a stand-in for an undecryptable record"
    )


class TransactionRow(BaseModel):
    """
    A transaction as persisted.

    description holds plaintext (legacy) or an envelope bundling every
    sensitive field. On protected rows amount is 0 and
    merchant/category_name/notes are None.
    """

    id: UUID
    account_id: UUID
    external_transaction_id: Optional[str] = None
    transaction_date: date
    description: str
    amount: Decimal = Decimal("0")
    merchant: Optional[str] = None
    category_name: Optional[str] = None
    notes: Optional[str] = None
    is_manual_category: bool = False


# =============================================================================
# ENCRYPTED PAYLOADS
# =============================================================================

PAYLOAD_VERSION = 1


class AccountSecrets(BaseModel):
    """Fields bundled into an account's envelope."""
    model_config = ConfigDict(extra="ignore")

    v: int = PAYLOAD_VERSION
    name: str
    balance: Decimal
    notes: Optional[str] = None


class TransactionSecrets(BaseModel):
    """Fields bundled into a transaction's envelope."""
    model_config = ConfigDict(extra="ignore")

    v: int = PAYLOAD_VERSION
    description: str
    amount: Decimal
    merchant: Optional[str] = None
    category_name: Optional[str] = None
    notes: Optional[str] = None


# =============================================================================
# DERIVED METRICS
# =============================================================================

class NetWorthSnapshot(BaseModel):
    """
    Net worth computed from decrypted accounts.

    Liabilities are reported as positive magnitudes.
    """

    snapshot_date: date = Field(
        default_factory=lambda: _utcnow().date()
    )
    total_assets: Decimal = Decimal("0")
    total_liabilities: Decimal = Decimal("0")
    net_worth: Decimal = Decimal("0")
    account_count: int = Field(
        default=0,
        ge=0,
        description="Accounts included in the totals"
    )
    excluded_count: int = Field(
        default=0,
        ge=0,
        description="Hidden or undecryptable accounts left out"
    )
