"""
Batch model representing one ingestion pass over a dataset.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from tickle_repo.core.enums import BatchType, Unknown


class Batch(BaseModel):
    """
    A discrete ingestion pass over a dataset.

    A batch is open while time_of_completion is None and closed once it is
    set, whether it was closed normally or aborted. Its type is fixed at
    creation.

    Attributes:
        id: Store-assigned primary key (None until persisted)
        dataset: ID of the owning dataset
        batch_key: Caller-supplied correlation key
        type: TOTAL (full resync) or INCREMENTAL (delta)
        time_of_creation: Stamped once on insert
        time_of_completion: Stamped when the batch is closed or aborted
        metadata: Opaque caller-defined document, stored as-is
    """

    id: int | None = None
    dataset: int | None = None
    batch_key: int | None = None
    type: BatchType | Unknown | None = None
    time_of_creation: datetime | None = None
    time_of_completion: datetime | None = None
    metadata: dict[str, Any] | None = None

    @property
    def is_open(self) -> bool:
        return self.time_of_completion is None

    class Config:
        arbitrary_types_allowed = True
        json_schema_extra = {
            "example": {
                "id": 4,
                "dataset": 1,
                "batch_key": 1000004,
                "type": "TOTAL",
                "time_of_completion": None,
                "metadata": {"harvester": "oai", "set": "books"},
            }
        }
