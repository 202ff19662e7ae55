"""
DataSet model representing a named collection of records.
"""

from pydantic import BaseModel, Field


class DataSet(BaseModel):
    """
    A logical dataset that batches and records belong to.

    Attributes:
        id: Store-assigned primary key (None until persisted)
        name: Unique dataset name
        display_name: Optional human readable label
        agency_id: Identifier of the owning submitter
    """

    id: int | None = None
    name: str | None = Field(default=None, min_length=1, max_length=255)
    display_name: str | None = None
    agency_id: int | None = None

    class Config:
        json_schema_extra = {
            "example": {
                "id": 1,
                "name": "dataset1",
                "display_name": "displayname1",
                "agency_id": 123456,
            }
        }
