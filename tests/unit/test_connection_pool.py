"""
Unit tests for database connection pool configuration and error translation.

Pool behaviour against a live database is covered in
tests/integration/test_database_pool.py.
"""
import psycopg
import pytest

from tickle_repo.config import RepositoryConfig
from tickle_repo.core.errors import (
    ConstraintViolationError,
    IllegalStateError,
    PersistenceError,
)
from tickle_repo.repository.connection import DatabaseConnectionPool, translate_errors


@pytest.mark.unit
class TestPoolConfiguration:

    def test_password_required(self, monkeypatch):
        """Test that pool creation fails without password"""
        monkeypatch.delenv("DB_PASSWORD", raising=False)

        with pytest.raises(ValueError, match="password must be provided"):
            DatabaseConnectionPool(host="localhost", database="ticklerepo", user="tickle")

    def test_environment_defaults(self, monkeypatch):
        monkeypatch.setenv("DB_HOST", "db.internal")
        monkeypatch.setenv("DB_PORT", "6543")
        monkeypatch.setenv("DB_PASSWORD", "secret")

        pool = DatabaseConnectionPool()

        assert pool.host == "db.internal"
        assert pool.port == 6543
        assert "host=db.internal" in pool.conninfo
        assert "port=6543" in pool.conninfo

    def test_from_config(self):
        config = RepositoryConfig(db_host="db", db_password="secret", pool_min_size=1, pool_max_size=3)

        pool = DatabaseConnectionPool.from_config(config)

        assert pool.host == "db"
        assert (pool.min_size, pool.max_size) == (1, 3)
        assert not pool.is_open

    def test_get_connection_before_open(self):
        pool = DatabaseConnectionPool(password="secret")

        with pytest.raises(IllegalStateError, match="not open"):
            with pool.get_connection():
                pass


@pytest.mark.unit
class TestTranslateErrors:

    def test_integrity_error_becomes_constraint_violation(self):
        with pytest.raises(ConstraintViolationError) as exc_info:
            with translate_errors():
                raise psycopg.errors.UniqueViolation("duplicate key value")

        assert isinstance(exc_info.value.__cause__, psycopg.errors.UniqueViolation)
        assert exc_info.value.constraint is None

    def test_driver_error_becomes_persistence_error(self):
        with pytest.raises(PersistenceError) as exc_info:
            with translate_errors():
                raise psycopg.OperationalError("server closed the connection")

        assert "server closed" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, psycopg.OperationalError)

    def test_other_errors_pass_through(self):
        with pytest.raises(KeyError):
            with translate_errors():
                raise KeyError("not a driver error")
