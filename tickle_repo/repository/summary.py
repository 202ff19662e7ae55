"""Per-dataset record counts for monitoring."""

from typing import Any, Mapping

from tickle_repo.core.enums import RecordStatus
from tickle_repo.core.models import DataSetSummary

from .connection import DatabaseConnectionPool

_SUMMARY_QUERY = """
    SELECT
        d.name AS name,
        COUNT(r.id) AS sum,
        COUNT(*) FILTER (WHERE r.status = %(active)s) AS active,
        COUNT(*) FILTER (WHERE r.status = %(deleted)s) AS deleted,
        COUNT(*) FILTER (WHERE r.status = %(reset)s) AS reset,
        MAX(r.timeoflastmodification) AS timeoflastmodification,
        MAX(r.batch) AS batch_id
    FROM dataset d
    LEFT JOIN record r ON r.dataset = d.id
    {where}
    GROUP BY d.id, d.name
    ORDER BY d.name
"""

_STATUS_PARAMS = {
    "active": RecordStatus.ACTIVE.value,
    "deleted": RecordStatus.DELETED.value,
    "reset": RecordStatus.RESET.value,
}


def _summary_from_row(row: Mapping[str, Any]) -> DataSetSummary:
    return DataSetSummary(
        name=row["name"],
        sum=row["sum"],
        active=row["active"],
        deleted=row["deleted"],
        reset=row["reset"],
        time_of_last_modification=row["timeoflastmodification"],
        batch_id=row["batch_id"],
    )


def get_dataset_summaries(pool: DatabaseConnectionPool) -> list[DataSetSummary]:
    """
    Summarise every dataset, including datasets without records.

    Returns:
        One summary per dataset, ordered by name
    """
    rows = pool.execute_query(_SUMMARY_QUERY.format(where=""), _STATUS_PARAMS)
    return [_summary_from_row(row) for row in rows]


def get_dataset_summary(pool: DatabaseConnectionPool, name: str) -> DataSetSummary | None:
    """Summarise the dataset called name, or None if there is no such dataset."""
    rows = pool.execute_query(
        _SUMMARY_QUERY.format(where="WHERE d.name = %(name)s"),
        {**_STATUS_PARAMS, "name": name},
    )
    return _summary_from_row(rows[0]) if rows else None
