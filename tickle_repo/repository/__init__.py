"""
PostgreSQL-backed repository for datasets, batches and records.
"""

from .connection import DatabaseConnectionPool
from .entity_store import EntityStore
from .lifecycle import TickleRepo
from .result_set import ResultSet
from .schema_mgmt import SchemaManager
from .session import Session, current_session
from .size_estimator import ApproximateCountStrategy, ExplainRowsStrategy, SizeEstimator

__all__ = [
    "DatabaseConnectionPool",
    "EntityStore",
    "TickleRepo",
    "ResultSet",
    "SchemaManager",
    "Session",
    "current_session",
    "ApproximateCountStrategy",
    "ExplainRowsStrategy",
    "SizeEstimator",
]
