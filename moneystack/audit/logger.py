"""
Audit Logger

DESIGN DECISION: Every significant action in the encryption layer is logged.
This provides:
1. Traceability of key lifecycle and mutations
2. Debugging capability when records fail to decrypt
3. User can see history of their interactions

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
- NEVER receives plaintext, passwords, keys or envelopes
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from moneystack.models.audit import AuditEvent, AuditEventBuilder
from moneystack.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility), if configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_session_started(self, user_id: str) -> None:
        await self.log(AuditEventBuilder.session_started(user_id))

    async def log_session_ended(self, user_id: str) -> None:
        await self.log(AuditEventBuilder.session_ended(user_id))

    async def log_missing_key(self, user_id: str, operation: str) -> None:
        await self.log(AuditEventBuilder.missing_key(user_id, operation))

    async def log_records_loaded(
        self,
        user_id: str,
        entity_type: str,
        total: int,
        placeholder_ids: list[UUID],
        correlation_id: UUID,
    ) -> None:
        """Log a batch load, plus one event per record that fell back to a placeholder."""
        for entity_id in placeholder_ids:
            await self.log(
                AuditEventBuilder.decryption_failed(
                    user_id=user_id,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    error_code="DecryptionIntegrityError",
                    correlation_id=correlation_id,
                )
            )
        await self.log(
            AuditEventBuilder.records_loaded(
                user_id=user_id,
                entity_type=entity_type,
                total=total,
                placeholders=len(placeholder_ids),
                correlation_id=correlation_id,
            )
        )

    async def log_account_saved(self, user_id: str, account_id: UUID) -> None:
        await self.log(AuditEventBuilder.account_saved(user_id, account_id))

    async def log_account_updated(
        self,
        user_id: str,
        account_id: UUID,
        field: str,
    ) -> None:
        await self.log(AuditEventBuilder.account_updated(user_id, account_id, field))

    async def log_account_visibility_changed(
        self,
        user_id: str,
        account_id: UUID,
        hidden: bool,
    ) -> None:
        await self.log(
            AuditEventBuilder.account_visibility_changed(user_id, account_id, hidden)
        )

    async def log_transactions_saved(
        self,
        user_id: str,
        count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transactions_saved(user_id, count, correlation_id))

    async def log_transaction_updated(
        self,
        user_id: str,
        transaction_id: UUID,
        field: str,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(user_id, transaction_id, field))

    async def log_mutation_failed(
        self,
        user_id: str,
        operation: str,
        error: Exception,
        entity_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed save/update. Only the error class name is recorded."""
        await self.log(
            AuditEventBuilder.mutation_failed(
                user_id=user_id,
                operation=operation,
                error_code=type(error).__name__,
                entity_id=entity_id,
            )
        )

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a logical operation (e.g., a batch load).
    """
    return uuid4()
