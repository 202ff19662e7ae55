"""
Bounded-memory, single-pass iteration over large query results.

A ResultSet declares a PostgreSQL server-side cursor on the connection of the
active session and pulls rows from it one page at a time, so memory use is
bounded by the page size regardless of how many rows the query matches.

Usage:
    with repo.session():
        with repo.get_records_in_batch(batch) as records:
            for record in records:
                ...
"""

import itertools
from collections.abc import Mapping
from typing import Any, Callable, Generic, Iterator, Sequence, TypeVar

from tickle_repo.core.errors import IllegalStateError
from tickle_repo.observability.logger import get_logger
from tickle_repo.utils.validation import validate_fetch_size

from .connection import translate_errors
from .session import Session

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_FETCH_SIZE = 50

_cursor_ids = itertools.count(1)


class ResultSet(Generic[T]):
    """
    One-time iteration over the mapped rows of a query.

    The first page is fetched when the result set is created, so an empty
    result is known up front and its cursor is released immediately. The
    cursor is closed exactly once: on exhaustion, on close() or context
    manager exit, or when mapping or fetching raises.

    Args:
        session: Active session whose connection runs the query
        query: SQL with positional (%s) placeholders
        params: Positional parameters
        mapper: Converts one row into T
        fetch_size: Rows per round trip

    Raises:
        IllegalStateError: If session is not active or params is a mapping
    """

    def __init__(
        self,
        session: Session | None,
        query: str,
        params: Sequence[Any] | None,
        mapper: Callable[[Mapping[str, Any]], T],
        fetch_size: int = DEFAULT_FETCH_SIZE,
    ):
        if session is None or not session.active:
            raise IllegalStateError("ResultSet requires an active session")
        if isinstance(params, Mapping):
            raise IllegalStateError("ResultSet queries take positional parameters only")

        self._mapper = mapper
        self._fetch_size = validate_fetch_size(fetch_size)
        self._page: list[Mapping[str, Any]] = []
        self._exhausted = False
        self._iterated = False
        self._closed = False
        self.rows_read = 0

        name = f"tickle_rs_{next(_cursor_ids)}"
        self._cursor = session.conn.cursor(name=name)
        self._cursor.itersize = self._fetch_size
        try:
            with translate_errors():
                self._cursor.execute(query, params)
            self._fetch_page()
        except BaseException:
            self.close()
            raise

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_empty(self) -> bool:
        """True if the query matched no rows at all."""
        return self.rows_read == 0 and not self._page and self._exhausted

    def __iter__(self) -> Iterator[T]:
        if self._iterated:
            raise IllegalStateError("ResultSet can only be iterated once")
        self._iterated = True
        return self._iterate()

    def _iterate(self) -> Iterator[T]:
        try:
            while self._page:
                page, self._page = self._page, []
                for row in page:
                    self.rows_read += 1
                    yield self._mapper(row)
                if self._exhausted:
                    break
                self._fetch_page()
        finally:
            self.close()

    def _fetch_page(self) -> None:
        with translate_errors():
            rows = self._cursor.fetchmany(self._fetch_size)
        self._page = rows
        if len(rows) < self._fetch_size:
            self._exhausted = True
        if not rows:
            self.close()

    def close(self) -> None:
        """Release the server-side cursor; further calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        self._page = []
        with translate_errors():
            self._cursor.close()
        logger.debug(f"ResultSet closed after {self.rows_read} rows")

    def __enter__(self) -> "ResultSet[T]":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
