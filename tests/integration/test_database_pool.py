"""
Integration tests for database connection pool

Tests the PostgreSQL connection pool functionality using testcontainers.
"""
import pytest

from tickle_repo.core.errors import PersistenceError
from tickle_repo.repository import SchemaManager


@pytest.mark.integration
def test_connection_pool_initialization(pool_factory):
    """Test that connection pool initializes correctly"""
    pool = pool_factory(min_size=2, max_size=5)

    pool.open()

    assert pool.is_open
    assert pool._pool.min_size == 2
    assert pool._pool.max_size == 5

    pool.close()
    assert not pool.is_open


@pytest.mark.integration
def test_get_connection(pool_factory):
    """Test getting a connection from the pool"""
    with pool_factory() as pool:
        with pool.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 as test")
                result = cur.fetchone()
                assert result["test"] == 1


@pytest.mark.integration
def test_execute_query(pool_factory):
    """Test executing a query using the pool"""
    with pool_factory() as pool:
        result = pool.execute_query("SELECT 42 as answer")
        assert len(result) == 1
        assert result[0]["answer"] == 42


@pytest.mark.integration
def test_transaction_rolls_back_on_error(clean_db):
    """Test that a failing transaction leaves no rows behind"""
    with pytest.raises(RuntimeError):
        with clean_db.transaction() as conn:
            conn.execute("INSERT INTO dataset (name) VALUES ('rolled_back')")
            raise RuntimeError("abort")

    result = clean_db.execute_query("SELECT count(*) AS n FROM dataset")
    assert result[0]["n"] == 0


@pytest.mark.integration
def test_execute_command_returns_rowcount(clean_db):
    clean_db.execute_command("INSERT INTO dataset (name) VALUES (%s), (%s)", ("a", "b"))

    assert clean_db.execute_command("UPDATE dataset SET displayname = 'x'") == 2


@pytest.mark.integration
def test_driver_errors_are_translated(clean_db):
    with pytest.raises(PersistenceError):
        clean_db.execute_query("SELECT * FROM no_such_table")


@pytest.mark.integration
def test_schema_is_idempotent(clean_db):
    manager = SchemaManager(clean_db)

    manager.create_schema()

    for table in ("dataset", "batch", "record"):
        assert manager.table_exists(table)
    assert not manager.table_exists("no_such_table")
