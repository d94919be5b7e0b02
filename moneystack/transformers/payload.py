"""
Versioned payload codec.

A record's sensitive fields are serialized as one compact JSON object
with explicit keys and a schema version "v", then sealed into a single
envelope. The version lives inside the encrypted JSON, so the envelope
wire format itself stays unchanged.

Blobs without "v" were written before versioning and read as version 1.
"""

import json
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from moneystack.crypto.envelope import decrypt, encrypt
from moneystack.crypto.errors import (
    MalformedEnvelopeError,
    UnsupportedPayloadVersionError,
)
from moneystack.models.records import PAYLOAD_VERSION

SecretsT = TypeVar("SecretsT", bound=BaseModel)


def invalid_fields(error: ValidationError) -> list[str]:
    """Dotted locations of the fields that failed. Never the input values."""
    return sorted({".".join(str(p) for p in err["loc"]) for err in error.errors()})


def seal_payload(secrets: BaseModel, key: bytes) -> str:
    """Serialize a secrets model to compact JSON and encrypt it."""
    return encrypt(secrets.model_dump_json(), key)


def open_payload(envelope: str, key: bytes, model: type[SecretsT]) -> SecretsT:
    """
    Decrypt an envelope and parse it into the given secrets model.

    Raises:
        DecryptionIntegrityError: Wrong key or tampered envelope
        MalformedEnvelopeError: Payload is not a JSON object of the right shape
        UnsupportedPayloadVersionError: Payload written by a newer schema
    """
    text = decrypt(envelope, key)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedEnvelopeError("Payload is not valid JSON") from e
    if not isinstance(data, dict):
        raise MalformedEnvelopeError("Payload is not a JSON object")

    version = data.get("v", 1)
    if not isinstance(version, int) or isinstance(version, bool) or version < 1:
        raise MalformedEnvelopeError("Payload version is invalid")
    if version > PAYLOAD_VERSION:
        raise UnsupportedPayloadVersionError(version, PAYLOAD_VERSION)

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedEnvelopeError(
            f"Payload failed validation: {invalid_fields(e)}"
        ) from None
