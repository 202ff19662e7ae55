"""
Create, find and update operations for datasets, batches and records.

Datasets and batches are registered in their own transaction on a dedicated
connection, so their registration is durable even if the caller's unit of
work later rolls back. Records are written inside the caller's session.

Timestamps are stamped here, explicitly, using the store's clock: callers
never set time_of_creation or time_of_last_modification themselves.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, TypeVar

import psycopg
from psycopg.types.json import Jsonb
from pydantic import BaseModel

from tickle_repo.core.codec import BATCH_TYPE, RECORD_STATUS
from tickle_repo.core.enums import UNKNOWN
from tickle_repo.core.errors import ValidationError
from tickle_repo.core.models import Batch, DataSet, Record
from tickle_repo.observability.logger import get_logger
from tickle_repo.utils.validation import (
    validate_dataset_name,
    validate_id,
    validate_local_id,
    validate_local_ids,
)

from .connection import DatabaseConnectionPool, translate_errors
from .mappers import (
    BATCH_COLUMNS,
    DATASET_COLUMNS,
    RECORD_COLUMNS,
    batch_from_row,
    dataset_from_row,
    record_from_row,
)
from .session import Session, bind, current_session, require_session, unbind

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


_TABLES: dict[type, tuple[str, str, Callable]] = {
    DataSet: ("dataset", DATASET_COLUMNS, dataset_from_row),
    Batch: ("batch", BATCH_COLUMNS, batch_from_row),
    Record: ("record", RECORD_COLUMNS, record_from_row),
}


class EntityStore:
    """
    CRUD and find primitives over the dataset, batch and record tables.

    Args:
        pool: Database connection pool
        clock: Source of timestamps written by the store
    """

    def __init__(self, pool: DatabaseConnectionPool, clock: Clock = utc_now):
        self.pool = pool
        self.clock = clock

    # =======================
    # SESSIONS
    # =======================

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Open a unit of work, or join the one already active.

        Attached entities are flushed and the transaction committed when the
        outermost block exits normally; any exception rolls everything back.

        Yields:
            Session: The active session
        """
        existing = current_session(self.pool)
        if existing is not None:
            yield existing
            return

        with translate_errors():
            with self.pool.get_connection() as conn:
                session = Session(self.pool, conn, self)
                token = bind(session)
                try:
                    yield session
                    session.flush()
                    conn.commit()
                except BaseException:
                    conn.rollback()
                    raise
                finally:
                    session.close()
                    unbind(token)

    @contextmanager
    def _connection(self) -> Iterator[tuple[psycopg.Connection, Session | None]]:
        """Use the active session's connection, or borrow one for a short read."""
        session = current_session(self.pool)
        if session is not None:
            with translate_errors():
                yield session.conn, session
            return

        with translate_errors():
            with self.pool.get_connection() as conn:
                yield conn, None

    def _fetch_one(self, query: str, params: tuple, mapper: Callable[..., M]) -> M | None:
        with self._connection() as (conn, session):
            with conn.cursor() as cur:
                cur.execute(query, params)
                row = cur.fetchone()
            if row is None:
                return None
            entity = mapper(row)
            return session.register(entity) if session is not None else entity

    def _fetch_all(self, query: str, params: tuple, mapper: Callable[..., M]) -> list[M]:
        with self._connection() as (conn, session):
            with conn.cursor() as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
            entities = [mapper(row) for row in rows]
            if session is not None:
                entities = [session.register(entity) for entity in entities]
            return entities

    # =======================
    # DATASETS
    # =======================

    def create_dataset(self, dataset: DataSet) -> DataSet:
        """
        Persist a dataset in its own transaction.

        Args:
            dataset: Dataset with at least a name

        Returns:
            The persisted dataset with its id populated

        Raises:
            ValidationError: If the name is missing or malformed
            ConstraintViolationError: If the name is already taken
        """
        name = validate_dataset_name(dataset.name)
        with self.pool.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO dataset (name, displayname, agencyid)
                    VALUES (%s, %s, %s)
                    RETURNING {DATASET_COLUMNS}
                    """,
                    (name, dataset.display_name, dataset.agency_id),
                )
                persisted = dataset_from_row(cur.fetchone())

        logger.info(
            f"Created dataset {persisted.name}",
            extra={"dataset_id": persisted.id, "agency_id": persisted.agency_id},
        )
        return persisted

    def find_dataset(self, dataset_id: int) -> DataSet | None:
        return self._fetch_one(
            f"SELECT {DATASET_COLUMNS} FROM dataset WHERE id = %s",
            (dataset_id,),
            dataset_from_row,
        )

    def find_dataset_by_name(self, name: str) -> DataSet | None:
        return self._fetch_one(
            f"SELECT {DATASET_COLUMNS} FROM dataset WHERE name = %s LIMIT 1",
            (name,),
            dataset_from_row,
        )

    def lookup_dataset(self, value: DataSet | None) -> DataSet | None:
        """
        Resolve a dataset by id, or by name when no id is given.

        Args:
            value: Placeholder carrying either id or name

        Returns:
            The stored dataset, or None if there is none
        """
        if value is None:
            return None
        if value.id:
            return self.find_dataset(value.id)
        if value.name is not None:
            return self.find_dataset_by_name(value.name)
        return None

    # =======================
    # BATCHES
    # =======================

    def insert_batch(self, conn: psycopg.Connection, batch: Batch) -> Batch:
        """
        Insert a batch on conn, stamping its time of creation.

        The caller owns the transaction; see TickleRepo.create_batch.
        """
        if batch.dataset is None:
            raise ValidationError("batch.dataset is required")
        if batch.batch_key is None:
            raise ValidationError("batch.batch_key is required")

        with conn.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO batch (dataset, batchkey, type, timeofcreation, metadata)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {BATCH_COLUMNS}
                """,
                (
                    batch.dataset,
                    batch.batch_key,
                    BATCH_TYPE.encode(batch.type).value,
                    self.clock(),
                    Jsonb(batch.metadata) if batch.metadata is not None else None,
                ),
            )
            return batch_from_row(cur.fetchone())

    def find_batch(self, batch_id: int) -> Batch | None:
        return self._fetch_one(
            f"SELECT {BATCH_COLUMNS} FROM batch WHERE id = %s",
            (batch_id,),
            batch_from_row,
        )

    def find_batch_by_key(self, batch_key: int) -> Batch | None:
        return self._fetch_one(
            f"SELECT {BATCH_COLUMNS} FROM batch WHERE batchkey = %s ORDER BY id LIMIT 1",
            (batch_key,),
            batch_from_row,
        )

    def find_batch_after(self, batch: Batch) -> Batch | None:
        """First batch of the same dataset with an id greater than batch.id."""
        return self._fetch_one(
            f"""
            SELECT {BATCH_COLUMNS} FROM batch
            WHERE id > %s AND dataset = %s
            ORDER BY id
            LIMIT 1
            """,
            (batch.id, batch.dataset),
            batch_from_row,
        )

    def lookup_batch(self, value: Batch | None) -> Batch | None:
        """
        Resolve a batch by id, or by batch key when no id is given.

        Args:
            value: Placeholder carrying either id or batch_key

        Returns:
            The stored batch, or None if there is none
        """
        if value is None:
            return None
        if value.id:
            return self.find_batch(value.id)
        if value.batch_key:
            return self.find_batch_by_key(value.batch_key)
        return None

    # =======================
    # RECORDS
    # =======================

    def create_record(self, record: Record) -> Record:
        """
        Insert a record inside the active session.

        Both timestamps are stamped with the store clock. The returned record
        is attached to the session.

        Raises:
            IllegalStateError: If no session is active
            ValidationError: If required fields are missing
            ConstraintViolationError: If (dataset, local_id) already exists
        """
        session = require_session(self.pool, "create_record")
        if record.dataset is None or record.batch is None:
            raise ValidationError("record.dataset and record.batch are required")
        local_id = validate_local_id(record.local_id)
        now = self.clock()

        with translate_errors():
            with session.conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO record (
                        batch, dataset, localid, trackingid, status,
                        timeofcreation, timeoflastmodification, content, checksum
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING {RECORD_COLUMNS}
                    """,
                    (
                        record.batch,
                        record.dataset,
                        local_id,
                        record.tracking_id,
                        RECORD_STATUS.encode(record.status).value,
                        now,
                        now,
                        record.content,
                        record.checksum,
                    ),
                )
                persisted = record_from_row(cur.fetchone())
        return session.register(persisted)

    def find_record(self, record_id: int) -> Record | None:
        return self._fetch_one(
            f"SELECT {RECORD_COLUMNS} FROM record WHERE id = %s",
            (record_id,),
            record_from_row,
        )

    def find_record_by_local_id(self, dataset_id: int, local_id: str) -> Record | None:
        return self._fetch_one(
            f"SELECT {RECORD_COLUMNS} FROM record WHERE dataset = %s AND localid = %s LIMIT 1",
            (dataset_id, local_id),
            record_from_row,
        )

    def lookup_record(self, value: Record | None) -> Record | None:
        """
        Resolve a record by id, or by (dataset, local_id) when no id is given.

        The row is always read from the database, since records may be
        changed by other processes. A record already attached to the active
        session is refreshed in place and returned.

        Args:
            value: Placeholder carrying id, or dataset and local_id

        Returns:
            The stored record, or None if there is none
        """
        if value is None:
            return None
        if value.id:
            return self.find_record(value.id)
        if value.local_id is not None and value.dataset:
            return self.find_record_by_local_id(value.dataset, value.local_id)
        return None

    def lookup_records_by_local_ids(self, dataset: DataSet, local_ids: list[str]) -> list[Record]:
        """
        Fetch the records of dataset matching any of local_ids.

        Args:
            dataset: Dataset to search
            local_ids: Local IDs to resolve

        Returns:
            Matching records in ascending id order; unknown local IDs are
            simply absent from the result
        """
        validate_id(dataset.id, "dataset.id")
        validate_local_ids(local_ids)
        if not local_ids:
            return []
        return self._fetch_all(
            f"""
            SELECT {RECORD_COLUMNS} FROM record
            WHERE dataset = %s AND localid = ANY(%s)
            ORDER BY id
            """,
            (dataset.id, local_ids),
            record_from_row,
        )

    # =======================
    # SESSION CALLBACKS
    # =======================

    def load(self, conn: psycopg.Connection, model: type[M], entity_id: int) -> M | None:
        table, columns, mapper = _TABLES[model]
        with conn.cursor() as cur:
            cur.execute(f"SELECT {columns} FROM {table} WHERE id = %s", (entity_id,))
            row = cur.fetchone()
        return mapper(row) if row is not None else None

    def write(self, conn: psycopg.Connection, entity: BaseModel) -> None:
        """
        Write the mutable columns of an attached entity.

        Datasets only ever change their display name. Batches change their
        completion time and metadata, never their type. Records get a fresh
        time of last modification on every write.
        """
        with conn.cursor() as cur:
            if isinstance(entity, Record):
                entity.time_of_last_modification = self.clock()
                # A status this code cannot name keeps its stored value
                status = "" if entity.status is UNKNOWN else "status = %(status)s,"
                cur.execute(
                    f"""
                    UPDATE record
                    SET batch = %(batch)s, trackingid = %(tracking_id)s, {status}
                        timeoflastmodification = %(modified)s, content = %(content)s,
                        checksum = %(checksum)s
                    WHERE id = %(id)s
                    """,
                    {
                        "batch": entity.batch,
                        "tracking_id": entity.tracking_id,
                        "status": RECORD_STATUS.encode(entity.status).value,
                        "modified": entity.time_of_last_modification,
                        "content": entity.content,
                        "checksum": entity.checksum,
                        "id": entity.id,
                    },
                )
            elif isinstance(entity, Batch):
                cur.execute(
                    "UPDATE batch SET timeofcompletion = %s, metadata = %s WHERE id = %s",
                    (
                        entity.time_of_completion,
                        Jsonb(entity.metadata) if entity.metadata is not None else None,
                        entity.id,
                    ),
                )
            elif isinstance(entity, DataSet):
                cur.execute(
                    "UPDATE dataset SET displayname = %s WHERE id = %s",
                    (entity.display_name, entity.id),
                )
            else:
                raise TypeError(f"Cannot write {type(entity).__name__}")
