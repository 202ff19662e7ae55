"""
Per-dataset advisory lock for total resyncs.

Two total batches running on the same dataset at the same time corrupt each
other's marks. Callers that cannot guarantee a single writer wrap the
create -> close/abort window in exclusive_resync(dataset).
"""

from contextlib import contextmanager
from typing import Iterator

from tickle_repo.core.errors import ConcurrentResyncError
from tickle_repo.core.models import DataSet
from tickle_repo.observability.logger import get_logger
from tickle_repo.utils.validation import validate_id

from .connection import DatabaseConnectionPool, translate_errors

logger = get_logger(__name__)

# "tick"
LOCK_NAMESPACE = 0x7469636B


@contextmanager
def exclusive_resync(pool: DatabaseConnectionPool, dataset: DataSet) -> Iterator[None]:
    """
    Hold the resync lock of dataset for the duration of the block.

    The lock is a session-level advisory lock held on a dedicated pooled
    connection, so it survives commits and rollbacks of the sessions used
    inside the block and is released when the block exits.

    Raises:
        ConcurrentResyncError: If another connection holds the lock
    """
    dataset_id = validate_id(dataset.id, "dataset.id")

    with translate_errors():
        with pool.get_connection() as conn:
            previous_autocommit = conn.autocommit
            conn.autocommit = True
            try:
                row = conn.execute(
                    "SELECT pg_try_advisory_lock(%s, %s) AS locked",
                    (LOCK_NAMESPACE, dataset_id),
                ).fetchone()
                if not row["locked"]:
                    logger.warning(
                        "Resync lock already held",
                        extra={"dataset_id": dataset_id},
                    )
                    raise ConcurrentResyncError(dataset_id)

                logger.debug("Acquired resync lock", extra={"dataset_id": dataset_id})
                try:
                    yield
                finally:
                    conn.execute(
                        "SELECT pg_advisory_unlock(%s, %s)",
                        (LOCK_NAMESPACE, dataset_id),
                    )
                    logger.debug("Released resync lock", extra={"dataset_id": dataset_id})
            finally:
                conn.autocommit = previous_autocommit
