"""
Closed value sets stored in the repository, plus the sentinel returned for
stored values this code does not recognise.
"""

from enum import Enum


class BatchType(str, Enum):
    """Kind of ingestion pass a batch represents."""

    TOTAL = "TOTAL"
    INCREMENTAL = "INCREMENTAL"


class RecordStatus(str, Enum):
    """Lifecycle state of a record."""

    ACTIVE = "ACTIVE"
    DELETED = "DELETED"
    RESET = "RESET"


class Unknown:
    """
    Sentinel for a stored enum value written by newer code.

    There is exactly one instance, UNKNOWN. It is falsy so that
    `if record.status:` style checks treat it as "no usable value".
    """

    _instance: "Unknown | None" = None

    def __new__(cls) -> "Unknown":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __reduce__(self):
        return (Unknown, ())


UNKNOWN = Unknown()
