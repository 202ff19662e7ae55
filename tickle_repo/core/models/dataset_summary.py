"""
DataSetSummary model with per-status record counts for a dataset.
"""

from datetime import datetime

from pydantic import BaseModel


class DataSetSummary(BaseModel):
    """
    Aggregate view of a dataset's records.

    Attributes:
        name: Dataset name
        sum: Total number of records
        active: Records with status ACTIVE
        deleted: Records with status DELETED
        reset: Records with status RESET
        time_of_last_modification: Most recent record modification
        batch_id: Highest batch ID touching any record of the dataset
    """

    name: str
    sum: int = 0
    active: int = 0
    deleted: int = 0
    reset: int = 0
    time_of_last_modification: datetime | None = None
    batch_id: int | None = None
