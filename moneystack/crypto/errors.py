"""
Encryption Layer Exceptions

DESIGN DECISION: Low-level codec errors never reach the UI as generic
exceptions. The record transformer layer is the boundary that turns them
into either a placeholder (list views) or a RecordMutationError with a
user-facing message (explicit single-record actions).

Every exception carries a `user_message` that is safe to show: it never
contains plaintext, keys or envelope contents.
"""


class EncryptionError(Exception):
    """Base exception for the encryption layer."""

    user_message = "Something went wrong with encryption."

    def __init__(self, message: str = "", user_message: str = ""):
        if user_message:
            self.user_message = user_message
        super().__init__(message or self.user_message)


class MissingKeyError(EncryptionError):
    """No password is cached for the session; the user must sign in again."""

    user_message = "Encryption key not found. Please sign in again."


class DecryptionIntegrityError(EncryptionError):
    """AEAD tag verification failed (wrong key, corrupted or tampered data)."""

    user_message = "Failed to decrypt data. Check your password."


class MalformedEnvelopeError(DecryptionIntegrityError):
    """Tagged value is not a well-formed envelope or payload."""
    pass


class UnsupportedPayloadVersionError(MalformedEnvelopeError):
    """Payload was written by a newer schema version than this build reads."""

    def __init__(self, version: int, supported: int):
        self.version = version
        self.supported = supported
        super().__init__(
            f"Payload version {version} is newer than supported version {supported}"
        )


class EnvironmentCryptoUnavailableError(EncryptionError):
    """The cipher or KDF primitive is not available. Fatal, do not retry."""

    user_message = "Encryption is not available in this environment."


class RecordMutationError(EncryptionError):
    """An explicit single-record save/update failed in the encryption layer."""

    user_message = "Failed to save changes."


class EnvelopeTooLargeError(RecordMutationError):
    """Sealed payload is wider than the storage column."""

    def __init__(self, length: int, limit: int):
        self.length = length
        self.limit = limit
        super().__init__(
            f"Envelope of {length} characters exceeds the {limit} character limit",
            user_message="This record is too large to save. Try shortening the notes.",
        )
