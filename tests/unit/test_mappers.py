"""
Unit tests for row to model mapping.
"""

from datetime import datetime, timezone

import pytest

from tickle_repo.core.enums import UNKNOWN, BatchType, RecordStatus
from tickle_repo.core.errors import RowMappingError, ValidationError
from tickle_repo.repository.mappers import batch_from_row, dataset_from_row, record_from_row

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def record_row(**overrides) -> dict:
    row = {
        "id": 1,
        "batch": 2,
        "dataset": 3,
        "localid": "r1",
        "trackingid": "t1",
        "status": "ACTIVE",
        "timeofcreation": NOW,
        "timeoflastmodification": NOW,
        "content": memoryview(b"payload"),
        "checksum": "abc",
    }
    row.update(overrides)
    return row


@pytest.mark.unit
class TestRecordFromRow:

    def test_maps_columns(self):
        record = record_from_row(record_row())

        assert record.local_id == "r1"
        assert record.status is RecordStatus.ACTIVE
        assert record.content == b"payload"
        assert record.time_of_last_modification == NOW

    def test_unknown_status_is_sentinel(self):
        assert record_from_row(record_row(status="ARCHIVED")).status is UNKNOWN

    def test_null_status_rejected(self):
        with pytest.raises(ValidationError, match="record_status"):
            record_from_row(record_row(status=None))

    def test_missing_column(self):
        row = record_row()
        del row["checksum"]

        with pytest.raises(RowMappingError) as exc_info:
            record_from_row(row)

        assert exc_info.value.column == "checksum"
        assert exc_info.value.model == "Record"


@pytest.mark.unit
def test_batch_from_row():
    batch = batch_from_row({
        "id": 4,
        "dataset": 1,
        "batchkey": 5001,
        "type": "TOTAL",
        "timeofcreation": NOW,
        "timeofcompletion": None,
        "metadata": {"harvester": "oai"},
    })

    assert batch.type is BatchType.TOTAL
    assert batch.is_open
    assert batch.metadata == {"harvester": "oai"}


@pytest.mark.unit
def test_dataset_from_row_missing_column():
    with pytest.raises(RowMappingError, match="agencyid"):
        dataset_from_row({"id": 1, "name": "dataset1", "displayname": None})
