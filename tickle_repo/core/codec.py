"""
Portable string codec for the repository's enum columns.

Enum columns are stored as plain text. Encoding is total: even a missing
value produces a well-formed StoredValue whose payload is None, so the
database sees an explicit NULL instead of a malformed value.

Decoding is deliberately asymmetric:

- a NULL column is an error (ValidationError), the column is required;
- an unrecognised string is NOT an error, it decodes to UNKNOWN so that
  rows written by newer code can still be read. Callers that branch on the
  decoded value must treat UNKNOWN explicitly.
"""

from enum import Enum
from typing import Generic, NamedTuple, TypeVar

from tickle_repo.core.enums import UNKNOWN, BatchType, RecordStatus, Unknown
from tickle_repo.core.errors import ValidationError

E = TypeVar("E", bound=Enum)


class StoredValue(NamedTuple):
    """Encoded form of an enum value: the column type name and its payload."""

    type_name: str
    value: str | None


class EnumCodec(Generic[E]):
    """
    Bidirectional mapping between an Enum and its stored string form.

    Args:
        enum_cls: The closed Enum being stored
        type_name: Name of the stored type (used in StoredValue and errors)
    """

    def __init__(self, enum_cls: type[E], type_name: str):
        self.enum_cls = enum_cls
        self.type_name = type_name
        self._by_name = {member.name: member for member in enum_cls}

    def encode(self, value: E | None) -> StoredValue:
        if value is None or value is UNKNOWN:
            return StoredValue(self.type_name, None)
        return StoredValue(self.type_name, value.name)

    def decode(self, stored: str | None) -> E | Unknown:
        if stored is None:
            raise ValidationError(f"{self.type_name}: value required")
        return self._by_name.get(stored, UNKNOWN)

    def __repr__(self) -> str:
        return f"EnumCodec({self.enum_cls.__name__}, type_name={self.type_name!r})"


BATCH_TYPE = EnumCodec(BatchType, "batch_type")
RECORD_STATUS = EnumCodec(RecordStatus, "record_status")
