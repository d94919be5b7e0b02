"""
Data Models Package

This package contains all Pydantic models used in MoneyStack.
All data flowing through the encryption layer must conform to these schemas.
"""

from moneystack.models.records import (
    PAYLOAD_VERSION,
    Account,
    AccountClassification,
    AccountRow,
    AccountSecrets,
    NetWorthSnapshot,
    Provider,
    Transaction,
    TransactionRow,
    TransactionSecrets,
    classify_account_type,
)
from moneystack.models.protected import (
    Plaintext,
    Protected,
    Sealed,
    inspect_column,
)
from moneystack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Record models
    "PAYLOAD_VERSION",
    "Account",
    "AccountClassification",
    "AccountRow",
    "AccountSecrets",
    "NetWorthSnapshot",
    "Provider",
    "Transaction",
    "TransactionRow",
    "TransactionSecrets",
    "classify_account_type",
    # Protected values
    "Plaintext",
    "Protected",
    "Sealed",
    "inspect_column",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
