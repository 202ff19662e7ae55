"""
Schema bootstrap for the tickle repository.

Applies the packaged DDL and, for tests, empties the tables again.
"""

from importlib import resources

from tickle_repo.observability.logger import get_logger

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)

TABLES = ("record", "batch", "dataset")


def load_schema_sql() -> str:
    """Return the packaged DDL script."""
    return resources.files("tickle_repo.repository").joinpath("schema.sql").read_text(encoding="utf-8")


class SchemaManager:
    """
    Creates and resets the dataset, batch and record tables.

    Every statement in the DDL is idempotent, so create_schema() can run on
    every start-up.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize schema manager.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    def create_schema(self) -> None:
        with self.pool.transaction() as conn:
            conn.execute(load_schema_sql())
        logger.info("Schema created", extra={"tables": list(TABLES)})

    def table_exists(self, table: str) -> bool:
        result = self.pool.execute_query(
            "SELECT to_regclass(%s) IS NOT NULL AS present",
            (table,),
        )
        return bool(result[0]["present"])

    def reset(self) -> None:
        """Delete every row and restart id sequences."""
        with self.pool.transaction() as conn:
            conn.execute(f"TRUNCATE {', '.join(TABLES)} RESTART IDENTITY CASCADE")
        logger.info("Schema reset", extra={"tables": list(TABLES)})
