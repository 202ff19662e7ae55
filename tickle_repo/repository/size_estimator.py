"""
Exact and approximate record counts per dataset.

Counting every record of a very large dataset is a full scan, so callers that
only need an order of magnitude ask for an estimate instead. The estimate
comes from an ApproximateCountStrategy; the shipped one reads the planner's
row estimate out of EXPLAIN output.
"""

import re
from typing import Protocol

import psycopg
from psycopg import sql

from tickle_repo.core.models import DataSet
from tickle_repo.observability.logger import get_logger
from tickle_repo.observability.metrics import dataset_size_records, set_gauge

from .connection import DatabaseConnectionPool, translate_errors

logger = get_logger(__name__)

DEFAULT_ESTIMATE_THRESHOLD = 1_000_000

_ROWS_PATTERN = re.compile(r"rows=(\d+)")


def parse_plan_rows(plan: str | None) -> int | None:
    """
    Extract the row estimate of the top plan node.

    Examples:
        >>> parse_plan_rows("Seq Scan on record  (cost=0.00..1.12 rows=10 width=4)")
        10
        >>> parse_plan_rows("garbage") is None
        True
    """
    if not plan:
        return None
    match = _ROWS_PATTERN.search(plan)
    if match is None:
        return None
    return int(match.group(1))


class ApproximateCountStrategy(Protocol):
    """Returns a cheap approximation of a dataset's record count, or None."""

    def approximate_count(self, conn: psycopg.Connection, dataset_id: int) -> int | None: ...


class ExplainRowsStrategy:
    """
    Planner estimate from EXPLAIN on the dataset's record scan.

    The dataset id is inlined as a literal so that the planner uses the
    column statistics for that value instead of a generic plan.
    """

    def approximate_count(self, conn: psycopg.Connection, dataset_id: int) -> int | None:
        query = sql.SQL("EXPLAIN SELECT id FROM record WHERE dataset = {}").format(
            sql.Literal(dataset_id)
        )
        with conn.cursor() as cur:
            cur.execute(query)
            row = cur.fetchone()
        if row is None:
            return None
        plan = row["QUERY PLAN"] if "QUERY PLAN" in row else next(iter(row.values()))
        rows = parse_plan_rows(plan)
        if rows is None:
            logger.warning("Could not parse row estimate from plan", extra={"plan": plan})
        return rows


class SizeEstimator:
    """
    Dataset size queries.

    Args:
        pool: Database connection pool
        threshold: Estimates below this are replaced by the exact count
        strategy: Source of approximate counts
    """

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        threshold: int = DEFAULT_ESTIMATE_THRESHOLD,
        strategy: ApproximateCountStrategy | None = None,
    ):
        self.pool = pool
        self.threshold = threshold
        self.strategy = strategy or ExplainRowsStrategy()

    def size_of(self, dataset: DataSet | None) -> int:
        """Exact number of records in dataset; 0 if dataset is absent."""
        if dataset is None or not dataset.id:
            return 0
        with translate_errors():
            with self.pool.get_connection() as conn:
                count = self._count(conn, dataset.id)
        set_gauge(dataset_size_records, count, dataset=str(dataset.id), method="exact")
        return count

    def estimate_size_of(self, dataset: DataSet | None) -> int:
        """
        Approximate number of records in dataset.

        Estimates under the threshold are not trusted: at that scale an exact
        count is cheap, so it is returned instead.

        Returns:
            The estimate, the exact count, or 0 if dataset is absent or the
            estimate cannot be obtained
        """
        if dataset is None or not dataset.id:
            return 0

        with translate_errors():
            with self.pool.get_connection() as conn:
                estimate = self.strategy.approximate_count(conn, dataset.id)
                if estimate is None:
                    return 0
                if estimate < self.threshold:
                    count = self._count(conn, dataset.id)
                    method = "exact"
                else:
                    count = estimate
                    method = "estimate"

        logger.debug(
            f"Size of dataset {dataset.id} is {count}",
            extra={"dataset_id": dataset.id, "estimate": estimate, "method": method},
        )
        set_gauge(dataset_size_records, count, dataset=str(dataset.id), method=method)
        return count

    @staticmethod
    def _count(conn: psycopg.Connection, dataset_id: int) -> int:
        with conn.cursor() as cur:
            cur.execute("SELECT COUNT(*) AS count FROM record WHERE dataset = %s", (dataset_id,))
            return cur.fetchone()["count"]
