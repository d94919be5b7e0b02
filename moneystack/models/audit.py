"""
Audit Models for MoneyStack

Every significant action in the encryption layer is logged for audit purposes.
This provides:
1. Traceability of key lifecycle (session start/end)
2. Visibility into records that failed to decrypt
3. A history of mutations to protected records

CRITICAL: Audit events NEVER carry plaintext financial data, passwords,
keys or envelopes. Only record IDs, counts and error class names.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Key lifecycle
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"
    MISSING_KEY = "missing_key"

    # Reads
    ACCOUNTS_LOADED = "accounts_loaded"
    TRANSACTIONS_LOADED = "transactions_loaded"
    RECORD_DECRYPTION_FAILED = "record_decryption_failed"

    # Writes
    ACCOUNT_SAVED = "account_saved"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"
    ACCOUNT_RESTORED = "account_restored"
    TRANSACTIONS_SAVED = "transactions_saved"
    TRANSACTION_UPDATED = "transaction_updated"
    MUTATION_FAILED = "mutation_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    user_id: Optional[str] = Field(
        default=None,
        description="User the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transaction')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one batch load)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data (no secrets)"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json,
         error_code, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_code or "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.session_started(user_id)
        event = AuditEventBuilder.decryption_failed(user_id, "account", account_id, "DecryptionIntegrityError", correlation_id)
    """

    @staticmethod
    def session_started(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            user_id=user_id,
            description="Encryption key cached for session",
            is_user_action=True,
        )

    @staticmethod
    def session_ended(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_ENDED,
            user_id=user_id,
            description="Encryption key cleared",
            is_user_action=True,
        )

    @staticmethod
    def missing_key(user_id: str, operation: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MISSING_KEY,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            description=f"No encryption key available for {operation}",
            details={"operation": operation},
            error_code="MissingKeyError",
        )

    @staticmethod
    def records_loaded(
        user_id: str,
        entity_type: str,
        total: int,
        placeholders: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.ACCOUNTS_LOADED
            if entity_type == "account"
            else AuditEventType.TRANSACTIONS_LOADED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.WARNING if placeholders else AuditSeverity.INFO,
            user_id=user_id,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"Loaded {total} {entity_type} record(s), {placeholders} undecryptable",
            details={"total": total, "placeholders": placeholders},
        )

    @staticmethod
    def decryption_failed(
        user_id: str,
        entity_type: str,
        entity_id: UUID,
        error_code: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DECRYPTION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Could not decrypt {entity_type}; placeholder shown",
            error_code=error_code,
        )

    @staticmethod
    def account_saved(user_id: str, account_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_SAVED,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            description="Encrypted account saved",
            is_user_action=True,
        )

    @staticmethod
    def account_updated(
        user_id: str,
        account_id: UUID,
        field: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_UPDATED,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            description=f"Account {field} updated",
            details={"field": field},
            is_user_action=True,
        )

    @staticmethod
    def account_visibility_changed(
        user_id: str,
        account_id: UUID,
        hidden: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.ACCOUNT_DELETED if hidden else AuditEventType.ACCOUNT_RESTORED
            ),
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            description="Account hidden" if hidden else "Account restored",
            is_user_action=True,
        )

    @staticmethod
    def transactions_saved(
        user_id: str,
        count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_SAVED,
            user_id=user_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"{count} encrypted transaction(s) saved",
            details={"count": count},
        )

    @staticmethod
    def transaction_updated(
        user_id: str,
        transaction_id: UUID,
        field: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction {field} re-encrypted",
            details={"field": field},
            is_user_action=True,
        )

    @staticmethod
    def mutation_failed(
        user_id: str,
        operation: str,
        error_code: str,
        entity_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_id=entity_id,
            description=f"Encrypted {operation} failed",
            details={"operation": operation},
            error_code=error_code,
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"System error: {error_type}",
            details=details or {},
            error_code=error_type,
            error_message=error_message,
        )
