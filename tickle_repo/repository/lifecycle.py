"""
Batch lifecycle engine: the mark-sweep protocol.

A TOTAL batch is a full resync of a dataset. Creating one marks every ACTIVE
record of the dataset RESET ("not yet reconfirmed"). The ingestion pipeline
then re-touches each record it sees. Closing the batch sweeps whatever is
still RESET to DELETED. Aborting it undoes the marks instead, leaving the
dataset as it was before the resync started.

INCREMENTAL batches never mark or sweep; closing one only stamps its
completion time.

Usage:
    repo = TickleRepo(pool)
    batch = repo.create_batch(Batch(dataset=dataset.id, batch_key=5001, type=BatchType.TOTAL))
    with repo.session():
        ...  # create and update records
        repo.close_batch(batch)
"""

from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Iterator

import psycopg

from tickle_repo.config import RepositoryConfig
from tickle_repo.core.codec import RECORD_STATUS
from tickle_repo.core.enums import BatchType, RecordStatus
from tickle_repo.core.errors import ValidationError
from tickle_repo.core.models import Batch, DataSet, DataSetSummary, Record
from tickle_repo.observability.logger import configure_logging, get_logger, log_operation
from tickle_repo.observability.metrics import (
    increment_counter,
    marks_undone_total,
    record_batch_event,
    records_marked_total,
    records_pruned_total,
    records_swept_total,
)
from tickle_repo.utils.validation import validate_cut_off_time, validate_id

from . import locking, summary
from .connection import DatabaseConnectionPool
from .entity_store import Clock, EntityStore, utc_now
from .mappers import RECORD_COLUMNS, record_from_row
from .result_set import DEFAULT_FETCH_SIZE, ResultSet
from .session import Session, require_session
from .size_estimator import DEFAULT_ESTIMATE_THRESHOLD, ApproximateCountStrategy, SizeEstimator

logger = get_logger(__name__)

ACTIVE = RECORD_STATUS.encode(RecordStatus.ACTIVE).value
RESET = RECORD_STATUS.encode(RecordStatus.RESET).value
DELETED = RECORD_STATUS.encode(RecordStatus.DELETED).value


class TickleRepo:
    """
    Entry point for datasets, batches and records.

    Args:
        pool: Open database connection pool
        clock: Source of every timestamp the repository writes
        fetch_size: Rows per round trip for streamed record listings
        estimate_threshold: Size estimates below this are replaced by an exact count
        count_strategy: Source of approximate dataset sizes
    """

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        clock: Clock = utc_now,
        fetch_size: int = DEFAULT_FETCH_SIZE,
        estimate_threshold: int = DEFAULT_ESTIMATE_THRESHOLD,
        count_strategy: ApproximateCountStrategy | None = None,
    ):
        self.pool = pool
        self.store = EntityStore(pool, clock=clock)
        self.estimator = SizeEstimator(pool, threshold=estimate_threshold, strategy=count_strategy)
        self.fetch_size = fetch_size

        # Row counts of the latest lifecycle calls, one set per context
        self._counts: ContextVar[dict[str, int]] = ContextVar(f"tickle_repo_counts_{id(self)}", default={})

    @property
    def last_marked(self) -> int:
        """Records marked by the last create_batch in the current context."""
        return self._counts.get().get("marked", 0)

    @property
    def last_swept(self) -> int:
        """Records swept by the last close_batch in the current context."""
        return self._counts.get().get("swept", 0)

    @property
    def last_undone(self) -> int:
        """Marks undone by the last abort_batch in the current context."""
        return self._counts.get().get("undone", 0)

    def _remember(self, **counts: int) -> None:
        self._counts.set({**self._counts.get(), **counts})

    @classmethod
    def from_config(cls, pool: DatabaseConnectionPool, config: RepositoryConfig) -> "TickleRepo":
        """Build a repository tuned by config, applying its logging settings."""
        configure_logging(config.log_level, config.log_format)
        return cls(
            pool,
            fetch_size=config.fetch_size,
            estimate_threshold=config.estimate_threshold,
        )

    @property
    def clock(self) -> Clock:
        return self.store.clock

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Unit of work; see EntityStore.session."""
        with self.store.session() as session:
            yield session

    # =======================
    # DATASETS
    # =======================

    def create_dataset(self, dataset: DataSet) -> DataSet:
        return self.store.create_dataset(dataset)

    def lookup_dataset(self, value: DataSet | None) -> DataSet | None:
        return self.store.lookup_dataset(value)

    def get_dataset_summaries(self) -> list[DataSetSummary]:
        return summary.get_dataset_summaries(self.pool)

    def get_dataset_summary(self, name: str) -> DataSetSummary | None:
        return summary.get_dataset_summary(self.pool, name)

    # =======================
    # BATCH LIFECYCLE
    # =======================

    def create_batch(self, batch: Batch) -> Batch:
        """
        Persist batch in its own transaction, marking records for a TOTAL batch.

        The insert and the mark commit or roll back together, independently
        of any session the caller has open. The number of marked records is
        available as last_marked.

        Args:
            batch: New batch with dataset, batch_key and type set

        Returns:
            The persisted batch, detached from any session

        Raises:
            ValidationError: If dataset, batch_key or type is missing
        """
        if batch.type not in (BatchType.TOTAL, BatchType.INCREMENTAL):
            raise ValidationError(f"batch.type must be TOTAL or INCREMENTAL, got {batch.type!r}")

        with log_operation("create_batch", logger=logger, dataset_id=batch.dataset) as op:
            with self.pool.transaction() as conn:
                persisted = self.store.insert_batch(conn, batch)
                marked = 0
                if persisted.type == BatchType.TOTAL:
                    marked = self._mark(conn, persisted)

        self._remember(marked=marked)
        if persisted.type == BatchType.TOTAL:
            logger.info(
                f"{marked} records marked by batch {persisted.id}",
                extra={"batch_id": persisted.id, "dataset_id": persisted.dataset},
            )
            increment_counter(records_marked_total, marked, dataset=str(persisted.dataset))
        record_batch_event(persisted.dataset, self._type_label(persisted), "created", op.duration)
        return persisted

    def close_batch(self, batch: Batch) -> Batch:
        """
        Close batch, sweeping unconfirmed records of a TOTAL batch.

        Every record of the dataset still RESET becomes DELETED, is moved to
        this batch and loses its checksum. The batch then gets its time of
        completion. Both changes are part of the active session's
        transaction.

        Records attached to the session are detached by the sweep; look them
        up again to keep working with them.

        Returns:
            The batch attached to the active session

        Raises:
            IllegalStateError: If no session is active
        """
        session = require_session(self.pool, "close_batch")

        with log_operation("close_batch", logger=logger, batch_id=batch.id) as op:
            managed = session.attach(batch)
            swept = self._close(session, managed)

        self._remember(swept=swept)
        record_batch_event(managed.dataset, self._type_label(managed), "closed", op.duration)
        return managed

    def abort_batch(self, batch: Batch) -> Batch:
        """
        Abort batch, restoring records marked by a TOTAL batch.

        Records still RESET go back to ACTIVE with their batch pointer left
        as it was before the resync. The batch is then completed like a
        closed one, so it stays in the batch history as an aborted attempt.
        It counts as an aborted event only, never as a closed one.

        Raises:
            IllegalStateError: If no session is active
        """
        session = require_session(self.pool, "abort_batch")

        with log_operation("abort_batch", logger=logger, batch_id=batch.id) as op:
            managed = session.attach(batch)
            undone = 0
            if managed.type == BatchType.TOTAL:
                session.flush()
                undone = self._undo_mark(session.conn, managed)
                session.evict_all(Record)
            swept = self._close(session, managed)

        self._remember(undone=undone, swept=swept)
        if managed.type == BatchType.TOTAL:
            logger.info(
                f"{undone} marks undone for batch {managed.id}",
                extra={"batch_id": managed.id, "dataset_id": managed.dataset},
            )
            increment_counter(marks_undone_total, undone, dataset=str(managed.dataset))
        record_batch_event(managed.dataset, self._type_label(managed), "aborted", op.duration)
        return managed

    def _close(self, session: Session, managed: Batch) -> int:
        """Sweep a TOTAL batch and stamp its completion; returns the rows swept."""
        swept = 0
        if managed.type == BatchType.TOTAL:
            session.flush()
            swept = self._sweep(session.conn, managed)
            session.evict_all(Record)
        managed.time_of_completion = self.clock()
        session.flush()

        if managed.type == BatchType.TOTAL:
            logger.info(
                f"{swept} records swept for batch {managed.id}",
                extra={"batch_id": managed.id, "dataset_id": managed.dataset},
            )
            increment_counter(records_swept_total, swept, dataset=str(managed.dataset))
        return swept

    def get_next_batch(self, last_seen: Batch) -> Batch | None:
        """
        Return the batch following last_seen in its dataset, once it is completed.

        Only the immediate successor is considered: while it is still open
        None is returned, even if later batches are already closed, so
        consumers never skip past a resync in progress. Always read from the
        database.
        """
        validate_id(last_seen.id, "last_seen.id")
        next_batch = self.store.find_batch_after(last_seen)
        if next_batch is None or next_batch.time_of_completion is None:
            return None
        return next_batch

    def lookup_batch(self, value: Batch | None) -> Batch | None:
        return self.store.lookup_batch(value)

    # =======================
    # RECORDS
    # =======================

    def create_record(self, record: Record) -> Record:
        return self.store.create_record(record)

    def lookup_record(self, value: Record | None) -> Record | None:
        return self.store.lookup_record(value)

    def lookup_records_by_local_ids(self, dataset: DataSet, local_ids: list[str]) -> list[Record]:
        return self.store.lookup_records_by_local_ids(dataset, local_ids)

    def update_batch_if_modified(self, record: Record, batch: Batch, checksum: str | None) -> bool:
        """
        Move record to batch if checksum shows its content changed.

        The comparison runs against the session's live handle for the
        record. A record not attached to the session is re-read first, so a
        stale copy never writes its old state, e.g. its status, over the
        stored row. The change is written when the session commits.

        Returns:
            True if the record was changed

        Raises:
            IllegalStateError: If no session is active
            ValidationError: If the record has no id or no stored row
        """
        session = require_session(self.pool, "update_batch_if_modified")
        if session.is_attached(record):
            managed = record
        else:
            validate_id(record.id, "record.id")
            # Pending edits of another handle for this row must survive the re-read
            session.flush()
            managed = self.store.find_record(record.id)
            if managed is None:
                raise ValidationError(f"Record {record.id} does not exist")
        return managed.update_batch_if_modified(batch, checksum)

    def delete_outdated_records_in_batch(self, batch: Batch, cut_off_time: datetime) -> int:
        """
        Delete records of the batch's dataset not modified since cut_off_time.

        Each such record is moved to batch, marked DELETED and loses its
        checksum.

        Returns:
            Number of records deleted

        Raises:
            IllegalStateError: If no session is active
        """
        session = require_session(self.pool, "delete_outdated_records_in_batch")
        validate_cut_off_time(cut_off_time)
        validate_id(batch.id, "batch.id")

        with log_operation("delete_outdated_records", logger=logger, batch_id=batch.id):
            session.flush()
            with session.conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE record
                    SET batch = %s, status = %s, timeoflastmodification = %s, checksum = ''
                    WHERE dataset = %s AND timeoflastmodification < %s
                    """,
                    (batch.id, DELETED, self.clock(), batch.dataset, cut_off_time),
                )
                pruned = cur.rowcount
            session.evict_all(Record)

        increment_counter(records_pruned_total, pruned, dataset=str(batch.dataset))
        return pruned

    def get_records_in_batch(self, batch: Batch) -> ResultSet[Record]:
        """Stream the records pointing at batch, ascending by id."""
        return ResultSet(
            require_session(self.pool, "get_records_in_batch"),
            f"SELECT {RECORD_COLUMNS} FROM record WHERE batch = %s ORDER BY id",
            (batch.id,),
            record_from_row,
            fetch_size=self.fetch_size,
        )

    def get_records_in_dataset(self, dataset: DataSet) -> ResultSet[Record]:
        """Stream the records of dataset, ascending by id."""
        return ResultSet(
            require_session(self.pool, "get_records_in_dataset"),
            f"SELECT {RECORD_COLUMNS} FROM record WHERE dataset = %s ORDER BY id",
            (dataset.id,),
            record_from_row,
            fetch_size=self.fetch_size,
        )

    # =======================
    # SIZE AND LOCKING
    # =======================

    def size_of(self, dataset: DataSet | None) -> int:
        return self.estimator.size_of(dataset)

    def estimate_size_of(self, dataset: DataSet | None) -> int:
        return self.estimator.estimate_size_of(dataset)

    def exclusive_resync(self, dataset: DataSet):
        """Context manager serialising total resyncs of dataset; see locking.exclusive_resync."""
        return locking.exclusive_resync(self.pool, dataset)

    # =======================
    # MARK / SWEEP
    # =======================

    @staticmethod
    def _mark(conn: psycopg.Connection, batch: Batch) -> int:
        with conn.cursor() as cur:
            cur.execute(
                "UPDATE record SET status = %s WHERE dataset = %s AND status = %s",
                (RESET, batch.dataset, ACTIVE),
            )
            return cur.rowcount

    def _sweep(self, conn: psycopg.Connection, batch: Batch) -> int:
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE record
                SET batch = %s, status = %s, timeoflastmodification = %s, checksum = ''
                WHERE dataset = %s AND status = %s
                """,
                (batch.id, DELETED, self.clock(), batch.dataset, RESET),
            )
            return cur.rowcount

    @staticmethod
    def _undo_mark(conn: psycopg.Connection, batch: Batch) -> int:
        with conn.cursor() as cur:
            cur.execute(
                "UPDATE record SET status = %s WHERE dataset = %s AND status = %s",
                (ACTIVE, batch.dataset, RESET),
            )
            return cur.rowcount

    @staticmethod
    def _type_label(batch: Batch) -> str:
        return batch.type.value if isinstance(batch.type, BatchType) else "UNKNOWN"
