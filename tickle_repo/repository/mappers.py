"""Row mappers - convert database rows into models."""

from typing import Any, Mapping

from pydantic import BaseModel

from tickle_repo.core.codec import BATCH_TYPE, RECORD_STATUS
from tickle_repo.core.errors import RowMappingError
from tickle_repo.core.models import Batch, DataSet, Record

DATASET_COLUMNS = "id, name, displayname, agencyid"

BATCH_COLUMNS = "id, dataset, batchkey, type, timeofcreation, timeofcompletion, metadata"

RECORD_COLUMNS = (
    "id, batch, dataset, localid, trackingid, status, "
    "timeofcreation, timeoflastmodification, content, checksum"
)


def _column(row: Mapping[str, Any], name: str, model: type[BaseModel]) -> Any:
    try:
        return row[name]
    except KeyError:
        raise RowMappingError(name, model.__name__) from None


def dataset_from_row(row: Mapping[str, Any]) -> DataSet:
    """Convert database row to DataSet."""
    return DataSet(
        id=_column(row, "id", DataSet),
        name=_column(row, "name", DataSet),
        display_name=_column(row, "displayname", DataSet),
        agency_id=_column(row, "agencyid", DataSet),
    )


def batch_from_row(row: Mapping[str, Any]) -> Batch:
    """Convert database row to Batch, decoding the stored type."""
    return Batch(
        id=_column(row, "id", Batch),
        dataset=_column(row, "dataset", Batch),
        batch_key=_column(row, "batchkey", Batch),
        type=BATCH_TYPE.decode(_column(row, "type", Batch)),
        time_of_creation=_column(row, "timeofcreation", Batch),
        time_of_completion=_column(row, "timeofcompletion", Batch),
        metadata=_column(row, "metadata", Batch),
    )


def record_from_row(row: Mapping[str, Any]) -> Record:
    """Convert database row to Record, decoding the stored status."""
    content = _column(row, "content", Record)
    if isinstance(content, memoryview):
        content = content.tobytes()

    return Record(
        id=_column(row, "id", Record),
        batch=_column(row, "batch", Record),
        dataset=_column(row, "dataset", Record),
        local_id=_column(row, "localid", Record),
        tracking_id=_column(row, "trackingid", Record),
        status=RECORD_STATUS.decode(_column(row, "status", Record)),
        time_of_creation=_column(row, "timeofcreation", Record),
        time_of_last_modification=_column(row, "timeoflastmodification", Record),
        content=content,
        checksum=_column(row, "checksum", Record),
    )
