"""
PostgreSQL connection pool management using psycopg3

This module provides the connection pool every repository component borrows
connections from, plus the translation of driver errors into the
repository's own error types.
"""
import os
import time
from contextlib import contextmanager
from typing import Iterator

import psycopg
from psycopg import OperationalError
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from tickle_repo.config import RepositoryConfig
from tickle_repo.core.errors import (
    ConstraintViolationError,
    IllegalStateError,
    PersistenceError,
)
from tickle_repo.observability.logger import get_logger

logger = get_logger(__name__)


@contextmanager
def translate_errors() -> Iterator[None]:
    """
    Re-raise psycopg errors as repository errors

    Integrity errors (unique, foreign key, not-null violations) become
    ConstraintViolationError; every other driver error becomes
    PersistenceError. The driver exception is chained as __cause__.
    """
    try:
        yield
    except psycopg.errors.IntegrityError as e:
        constraint = e.diag.constraint_name if e.diag else None
        logger.warning(
            f"Constraint violation: {e}",
            extra={"constraint": constraint, "sqlstate": e.sqlstate},
        )
        raise ConstraintViolationError(str(e), constraint=constraint) from e
    except psycopg.Error as e:
        logger.error(f"Database error: {e}", extra={"sqlstate": e.sqlstate})
        raise PersistenceError(str(e)) from e


class DatabaseConnectionPool:
    """
    PostgreSQL connection pool manager using psycopg3

    Connections are handed out with dict rows and autocommit disabled, so
    every connection starts an implicit transaction on first statement.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 2,
        max_size: int = 10,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize database connection pool

        Args:
            host: Database host (defaults to env var DB_HOST)
            port: Database port (defaults to env var DB_PORT)
            database: Database name (defaults to env var DB_NAME)
            user: Database user (defaults to env var DB_USER)
            password: Database password (defaults to env var DB_PASSWORD)
            min_size: Minimum pool size
            max_size: Maximum pool size
            timeout: Connection timeout in seconds
        """
        self.host = host or os.getenv("DB_HOST", "localhost")
        self.port = port or int(os.getenv("DB_PORT", "5432"))
        self.database = database or os.getenv("DB_NAME", "ticklerepo")
        self.user = user or os.getenv("DB_USER", "tickle")
        self.password = password or os.getenv("DB_PASSWORD")

        if not self.password:
            raise ValueError(
                "Database password must be provided. "
                "Set DB_PASSWORD environment variable or pass to constructor."
            )

        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout

        self.conninfo = make_conninfo(
            host=self.host,
            port=self.port,
            dbname=self.database,
            user=self.user,
            password=self.password,
            connect_timeout=int(self.timeout),
        )

        self._pool: ConnectionPool | None = None

    @classmethod
    def from_config(cls, config: RepositoryConfig) -> "DatabaseConnectionPool":
        """Build a pool from a RepositoryConfig"""
        return cls(
            host=config.db_host,
            port=config.db_port,
            database=config.db_name,
            user=config.db_user,
            password=config.db_password,
            min_size=config.pool_min_size,
            max_size=config.pool_max_size,
            timeout=config.pool_timeout,
        )

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the connection pool with retry logic.

        Args:
            max_retries: Maximum number of connection attempts
            retry_delay: Delay between retries in seconds

        Raises:
            OperationalError: If connection fails after all retries
        """
        if self._pool is not None:
            return

        self._pool = ConnectionPool(
            conninfo=self.conninfo,
            min_size=self.min_size,
            max_size=self.max_size,
            timeout=self.timeout,
            kwargs={"row_factory": dict_row},
            open=False,
        )
        self._pool.open()

        for attempt in range(1, max_retries + 1):
            try:
                self._pool.wait(timeout=self.timeout)
                logger.info(
                    "Connection pool opened",
                    extra={"host": self.host, "database": self.database, "max_size": self.max_size},
                )
                return
            except (OperationalError, PoolTimeout) as e:
                if attempt < max_retries:
                    logger.warning(f"Connection attempt {attempt} failed: {e}")
                    time.sleep(retry_delay)
                else:
                    self._pool.close()
                    self._pool = None
                    raise OperationalError(
                        f"Failed to connect to database after {max_retries} attempts: {e}"
                    ) from e

    def close(self) -> None:
        """Close the connection pool"""
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    @contextmanager
    def get_connection(self) -> Iterator[psycopg.Connection]:
        """
        Get a connection from the pool

        The pool commits the connection's transaction when the block exits
        normally and rolls it back when it raises.

        Yields:
            psycopg.Connection: Database connection

        Raises:
            IllegalStateError: If pool is not open
        """
        if self._pool is None:
            raise IllegalStateError("Connection pool is not open. Call open() first.")

        with self._pool.connection() as conn:
            yield conn

    @contextmanager
    def transaction(self) -> Iterator[psycopg.Connection]:
        """
        Run a block in a dedicated transaction on its own pooled connection

        The transaction is independent of any other connection the caller may
        hold: it commits when the block exits normally and rolls back
        otherwise. Driver errors are translated to repository errors.

        Yields:
            psycopg.Connection: Connection inside the transaction
        """
        with translate_errors():
            with self.get_connection() as conn:
                with conn.transaction():
                    yield conn

    def execute_query(self, query: str, params: tuple | dict | None = None) -> list[dict]:
        """
        Execute a SELECT query and return results

        Args:
            query: SQL SELECT query
            params: Query parameters (optional)

        Returns:
            List of dictionaries (one per row)
        """
        with translate_errors():
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    return cur.fetchall()

    def execute_command(self, command: str, params: tuple | None = None) -> int:
        """
        Execute an INSERT/UPDATE/DELETE command in its own transaction

        Args:
            command: SQL command
            params: Command parameters (optional)

        Returns:
            Number of rows affected
        """
        with self.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(command, params)
                return cur.rowcount

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
