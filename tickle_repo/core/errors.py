"""
Error taxonomy for the tickle repository.

Lookups never raise for missing rows, they return None. Everything else that
can go wrong surfaces as one of the exceptions below, with the original
driver exception chained as __cause__ where there is one.
"""


class TickleRepoError(Exception):
    """Base class for all repository errors."""


class ValidationError(TickleRepoError, ValueError):
    """Raised for malformed caller input or undecodable stored values."""


class ConstraintViolationError(TickleRepoError):
    """Raised when the database rejects a write due to an integrity constraint."""

    def __init__(self, message: str, constraint: str | None = None):
        self.constraint = constraint
        super().__init__(message)


class PersistenceError(TickleRepoError):
    """Raised for driver and I/O failures."""


class RowMappingError(PersistenceError):
    """Raised when a result row cannot be mapped onto a model."""

    def __init__(self, column: str, model: str):
        self.column = column
        self.model = model
        super().__init__(f"Column '{column}' missing from row mapped to {model}")


class IllegalStateError(TickleRepoError, RuntimeError):
    """Raised when an operation is used outside the state it requires."""


class ConcurrentResyncError(IllegalStateError):
    """Raised when another process already holds the resync lock of a dataset."""

    def __init__(self, dataset_id: int):
        self.dataset_id = dataset_id
        super().__init__(f"Dataset {dataset_id} already has a total resync in progress")
