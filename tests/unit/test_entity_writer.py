"""
Unit tests for the UPDATE statements EntityStore issues on session flush.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from tickle_repo.core.enums import UNKNOWN, RecordStatus
from tickle_repo.core.models import Batch, Record
from tickle_repo.repository.entity_store import EntityStore
from tickle_repo.repository.mappers import record_from_row

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return EntityStore(MagicMock(), clock=lambda: NOW)


@pytest.fixture
def conn():
    return MagicMock()


def executed(conn) -> tuple[str, dict]:
    cur = conn.cursor.return_value.__enter__.return_value
    return cur.execute.call_args.args


def stored_row(status: str) -> dict:
    return {
        "id": 1,
        "batch": 2,
        "dataset": 3,
        "localid": "r1",
        "trackingid": "t1",
        "status": status,
        "timeofcreation": NOW,
        "timeoflastmodification": NOW,
        "content": b"payload",
        "checksum": "old",
    }


@pytest.mark.unit
class TestRecordWrite:

    def test_known_status_is_written(self, store, conn):
        record = record_from_row(stored_row("RESET"))
        record.status = RecordStatus.ACTIVE

        store.write(conn, record)

        query, params = executed(conn)
        assert "status = %(status)s" in query
        assert params["status"] == "ACTIVE"
        assert params["modified"] == NOW

    def test_unrecognised_status_left_as_stored(self, store, conn):
        record = record_from_row(stored_row("ARCHIVED"))
        assert record.status is UNKNOWN

        record.update_batch_if_modified(Batch(id=5, dataset=3), "new")
        store.write(conn, record)

        query, params = executed(conn)
        assert "status" not in query
        assert (params["batch"], params["checksum"], params["id"]) == (5, "new", 1)

    def test_write_stamps_modification_time(self, store, conn):
        record = Record(id=1, dataset=3, batch=2, local_id="r1")

        store.write(conn, record)

        assert record.time_of_last_modification == NOW
