"""
Tests for the audit logger.
"""

import asyncio
from uuid import uuid4

from moneystack.audit import AuditLogger, create_correlation_id
from moneystack.crypto import DecryptionIntegrityError
from moneystack.models import AuditEventBuilder, AuditEventType
from moneystack.services.storage import InMemoryAuditStorage, StorageError


class FailingAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise StorageError("sheet unavailable")


class TestAuditLogger:
    """Tests for AuditLogger."""

    def test_local_only(self):
        """Without storage, logging always succeeds."""
        logger = AuditLogger()
        assert asyncio.run(logger.log(AuditEventBuilder.session_started("user-42"))) is True

    def test_persists_to_storage(self):
        """Events reach the configured storage."""
        storage = InMemoryAuditStorage()
        asyncio.run(AuditLogger(storage).log_session_ended("user-42"))
        assert [e.event_type for e in storage.events] == [AuditEventType.SESSION_ENDED]

    def test_storage_failure_does_not_raise(self):
        """A broken audit store never breaks the caller."""
        logger = AuditLogger(FailingAuditStorage())
        assert asyncio.run(logger.log(AuditEventBuilder.session_started("user-42"))) is False

    def test_records_loaded_with_placeholders(self):
        """One failure event per placeholder, then the batch summary."""
        storage = InMemoryAuditStorage()
        correlation_id = create_correlation_id()
        bad_ids = [uuid4(), uuid4()]

        asyncio.run(AuditLogger(storage).log_records_loaded(
            user_id="user-42",
            entity_type="transaction",
            total=10,
            placeholder_ids=bad_ids,
            correlation_id=correlation_id,
        ))

        events = storage.events
        assert [e.event_type for e in events] == [
            AuditEventType.RECORD_DECRYPTION_FAILED,
            AuditEventType.RECORD_DECRYPTION_FAILED,
            AuditEventType.TRANSACTIONS_LOADED,
        ]
        assert [e.entity_id for e in events[:2]] == bad_ids
        assert all(e.correlation_id == correlation_id for e in events)

    def test_mutation_failed_records_class_name_only(self):
        """Error messages (which might echo data) are not persisted."""
        storage = InMemoryAuditStorage()
        error = DecryptionIntegrityError("details that should stay local")

        asyncio.run(AuditLogger(storage).log_mutation_failed("user-42", "update_notes", error))

        (event,) = storage.events
        assert event.error_code == "DecryptionIntegrityError"
        assert event.error_message is None
        assert "details that should stay local" not in str(event.to_log_dict())

    def test_log_error(self):
        """System errors are persisted with their type."""
        storage = InMemoryAuditStorage()
        asyncio.run(AuditLogger(storage).log_error("EnvironmentCryptoUnavailableError", "no AES"))
        (event,) = storage.events
        assert event.event_type == AuditEventType.SYSTEM_ERROR
        assert event.error_code == "EnvironmentCryptoUnavailableError"
