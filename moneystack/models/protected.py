"""
Protected column values.

A stored text column is either legacy plaintext or a sealed envelope.
inspect_column() decides which, once, at read time; downstream code
matches on the type instead of re-checking the tag.
"""

from typing import Union

from pydantic import BaseModel, ConfigDict

from moneystack.crypto.envelope import is_encrypted


class Plaintext(BaseModel):
    """A column value written before encryption existed."""
    model_config = ConfigDict(frozen=True)

    value: str


class Sealed(BaseModel):
    """A column value holding an envelope."""
    model_config = ConfigDict(frozen=True)

    envelope: str


Protected = Union[Plaintext, Sealed]


def inspect_column(value: str) -> Protected:
    if is_encrypted(value):
        return Sealed(envelope=value)
    return Plaintext(value=value)
