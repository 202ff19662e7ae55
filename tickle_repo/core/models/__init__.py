"""
Core data models for the tickle repository.

All models use Pydantic for runtime validation and type safety.
"""

from .batch import Batch
from .dataset import DataSet
from .dataset_summary import DataSetSummary
from .record import Record

__all__ = [
    "DataSet",
    "Batch",
    "Record",
    "DataSetSummary",
]
