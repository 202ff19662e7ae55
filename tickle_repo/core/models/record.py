"""
Record model representing a single item of a dataset.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from tickle_repo.core.enums import RecordStatus, Unknown

from .batch import Batch


class Record(BaseModel):
    """
    A single item of a dataset.

    The batch field points at the batch that last wrote or touched the
    record, it moves between batches over the record's lifetime.

    Attributes:
        id: Store-assigned primary key (None until persisted)
        batch: ID of the batch that last touched the record
        dataset: ID of the owning dataset
        local_id: Caller-supplied key, unique within the dataset
        tracking_id: Caller-supplied correlation string
        status: ACTIVE, RESET (awaiting reconfirmation) or DELETED
        time_of_creation: Stamped once on first insert
        time_of_last_modification: Stamped by the store on every write
        content: Opaque payload
        checksum: Digest of content supplied by the caller
    """

    id: int | None = None
    batch: int | None = None
    dataset: int | None = None
    local_id: str | None = Field(default=None, min_length=1)
    tracking_id: str | None = None
    status: RecordStatus | Unknown | None = RecordStatus.ACTIVE
    time_of_creation: datetime | None = None
    time_of_last_modification: datetime | None = None
    content: bytes | None = None
    checksum: str | None = None

    def update_batch_if_modified(self, batch: Batch, checksum: str | None) -> bool:
        """
        Move the record to batch if its content changed.

        The record is considered modified when its current checksum is
        missing or differs from checksum. Status is left alone.

        Args:
            batch: Batch now touching the record
            checksum: Checksum of the content just ingested

        Returns:
            True if batch and checksum were updated
        """
        if self.checksum is None or self.checksum != checksum:
            self.batch = batch.id
            self.checksum = checksum
            return True
        return False

    class Config:
        arbitrary_types_allowed = True
        json_schema_extra = {
            "example": {
                "id": 1,
                "batch": 1,
                "dataset": 1,
                "local_id": "local1_1_1",
                "tracking_id": "trackingid1_1_1",
                "status": "ACTIVE",
                "checksum": "1a79a4d60de6718e8e5b326e338ae533",
            }
        }
