"""
Unit tests for ResultSet paging and cursor release, against a mocked
server-side cursor.
"""

from unittest.mock import MagicMock

import psycopg
import pytest

from tickle_repo.core.errors import IllegalStateError, PersistenceError, ValidationError
from tickle_repo.repository.result_set import ResultSet

QUERY = "SELECT id FROM record WHERE batch = %s ORDER BY id"


def make_session(rows: list[dict], fetch_size: int):
    """Session whose connection hands out a cursor returning rows in pages"""
    pages = [rows[i:i + fetch_size] for i in range(0, len(rows), fetch_size)]
    pages.append([])

    cursor = MagicMock()
    cursor.fetchmany.side_effect = pages

    session = MagicMock()
    session.active = True
    session.conn.cursor.return_value = cursor
    return session, cursor


def ids(row):
    return row["id"]


def rows_of(n: int) -> list[dict]:
    return [{"id": i} for i in range(1, n + 1)]


@pytest.mark.unit
class TestIteration:

    def test_yields_all_rows_in_order(self):
        session, cursor = make_session(rows_of(5), fetch_size=2)

        result = ResultSet(session, QUERY, (1,), ids, fetch_size=2)

        assert list(result) == [1, 2, 3, 4, 5]
        assert result.rows_read == 5
        assert result.closed
        cursor.close.assert_called_once()

    def test_fetches_fixed_page_size(self):
        session, cursor = make_session(rows_of(7), fetch_size=3)

        list(ResultSet(session, QUERY, (1,), ids, fetch_size=3))

        assert cursor.fetchmany.call_count == 3
        for call in cursor.fetchmany.call_args_list:
            assert call.args == (3,)

    def test_exact_multiple_of_page_size(self):
        session, cursor = make_session(rows_of(4), fetch_size=2)

        assert list(ResultSet(session, QUERY, (1,), ids, fetch_size=2)) == [1, 2, 3, 4]
        cursor.close.assert_called_once()

    def test_uses_named_cursor(self):
        session, cursor = make_session(rows_of(1), fetch_size=2)

        ResultSet(session, QUERY, (7,), ids, fetch_size=2)

        name = session.conn.cursor.call_args.kwargs["name"]
        assert name.startswith("tickle_rs_")
        cursor.execute.assert_called_once_with(QUERY, (7,))

    def test_single_pass(self):
        session, _ = make_session(rows_of(2), fetch_size=5)
        result = ResultSet(session, QUERY, (1,), ids, fetch_size=5)
        list(result)

        with pytest.raises(IllegalStateError, match="once"):
            iter(result)


@pytest.mark.unit
class TestEmpty:

    def test_empty_detected_up_front(self):
        session, cursor = make_session([], fetch_size=2)

        result = ResultSet(session, QUERY, (999,), ids, fetch_size=2)

        assert result.is_empty
        assert result.closed
        cursor.close.assert_called_once()
        assert list(result) == []
        cursor.close.assert_called_once()

    def test_non_empty_is_not_empty(self):
        session, _ = make_session(rows_of(1), fetch_size=2)
        assert not ResultSet(session, QUERY, (1,), ids, fetch_size=2).is_empty


@pytest.mark.unit
class TestRelease:

    def test_early_break_releases_once(self):
        session, cursor = make_session(rows_of(10), fetch_size=3)

        with ResultSet(session, QUERY, (1,), ids, fetch_size=3) as result:
            for record_id in result:
                if record_id == 2:
                    break

        cursor.close.assert_called_once()
        result.close()
        cursor.close.assert_called_once()

    def test_abandoned_iterator_releases(self):
        session, cursor = make_session(rows_of(10), fetch_size=3)
        result = ResultSet(session, QUERY, (1,), ids, fetch_size=3)

        iterator = iter(result)
        next(iterator)
        iterator.close()

        assert result.closed
        cursor.close.assert_called_once()

    def test_mapping_error_releases(self):
        session, cursor = make_session(rows_of(5), fetch_size=2)

        def failing(row):
            if row["id"] == 3:
                raise KeyError("column")
            return row["id"]

        result = ResultSet(session, QUERY, (1,), failing, fetch_size=2)
        with pytest.raises(KeyError):
            list(result)

        cursor.close.assert_called_once()

    def test_execute_error_releases_and_translates(self):
        session, cursor = make_session(rows_of(1), fetch_size=2)
        cursor.execute.side_effect = psycopg.errors.UndefinedTable("relation does not exist")

        with pytest.raises(PersistenceError) as exc_info:
            ResultSet(session, QUERY, (1,), ids, fetch_size=2)

        assert isinstance(exc_info.value.__cause__, psycopg.errors.UndefinedTable)
        cursor.close.assert_called_once()


@pytest.mark.unit
class TestPreconditions:

    def test_requires_session(self):
        with pytest.raises(IllegalStateError, match="active session"):
            ResultSet(None, QUERY, (1,), ids)

    def test_requires_active_session(self):
        session, _ = make_session([], fetch_size=2)
        session.active = False

        with pytest.raises(IllegalStateError):
            ResultSet(session, QUERY, (1,), ids)
        session.conn.cursor.assert_not_called()

    def test_named_parameters_rejected(self):
        session, _ = make_session([], fetch_size=2)

        with pytest.raises(IllegalStateError, match="positional"):
            ResultSet(session, "SELECT id FROM record WHERE batch = %(batch)s", {"batch": 1}, ids)
        session.conn.cursor.assert_not_called()

    def test_invalid_fetch_size(self):
        session, _ = make_session([], fetch_size=2)

        with pytest.raises(ValidationError):
            ResultSet(session, QUERY, (1,), ids, fetch_size=0)
