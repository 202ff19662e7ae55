"""
Pytest configuration and fixtures for tickle-repo tests

This module provides shared fixtures for unit and integration tests.
"""
import os
from dataclasses import dataclass
from typing import Generator

import pytest
from testcontainers.postgres import PostgresContainer

from tickle_repo.core.enums import BatchType
from tickle_repo.core.models import Batch, DataSet, Record
from tickle_repo.repository import DatabaseConnectionPool, SchemaManager, TickleRepo

DB_USER = "tickle"
DB_PASSWORD = "tickle_password"
DB_NAME = "ticklerepo"


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance
    """
    with PostgresContainer(
        image="postgres:16.2-alpine",
        username=DB_USER,
        password=DB_PASSWORD,
        dbname=DB_NAME,
        driver=None,
    ) as postgres:
        # Wait for container to be ready
        postgres.get_connection_url()
        yield postgres


def make_pool(postgres_container, **kwargs) -> DatabaseConnectionPool:
    """Build a (not yet opened) pool pointing at the test container"""
    return DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database=DB_NAME,
        user=DB_USER,
        password=DB_PASSWORD,
        **kwargs,
    )


@pytest.fixture(scope="session")
def db_pool(postgres_container) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Open a connection pool and create the schema once per test session

    Yields:
        Open DatabaseConnectionPool
    """
    pool = make_pool(postgres_container, min_size=1, max_size=5)
    pool.open()
    SchemaManager(pool).create_schema()
    yield pool
    pool.close()


@pytest.fixture(scope="function")
def clean_db(db_pool) -> DatabaseConnectionPool:
    """
    Provide a pool over empty tables with id sequences restarted

    Returns:
        Open DatabaseConnectionPool
    """
    SchemaManager(db_pool).reset()
    return db_pool


@pytest.fixture(scope="function")
def repo(clean_db) -> TickleRepo:
    """Repository over a clean database, paging streamed results 3 rows at a time"""
    return TickleRepo(clean_db, fetch_size=3)


@dataclass
class PopulatedDataSet:
    dataset: DataSet
    batch: Batch
    records: list[Record]


def populate(repo: TickleRepo, name: str = "D1", batch_key: int = 5000, size: int = 10) -> PopulatedDataSet:
    """
    Create dataset name holding size ACTIVE records r1..rN under a closed batch
    """
    dataset = repo.create_dataset(DataSet(name=name, display_name=f"Dataset {name}", agency_id=123456))
    batch = repo.create_batch(Batch(dataset=dataset.id, batch_key=batch_key, type=BatchType.INCREMENTAL))

    with repo.session():
        records = [
            repo.create_record(Record(
                dataset=dataset.id,
                batch=batch.id,
                local_id=f"r{i}",
                tracking_id=f"{name}-t{i}",
                content=f"content of r{i}".encode(),
                checksum=f"checksum-r{i}",
            ))
            for i in range(1, size + 1)
        ]
        batch = repo.close_batch(batch)

    return PopulatedDataSet(dataset=dataset, batch=batch, records=records)


@pytest.fixture(scope="function")
def d1(repo) -> PopulatedDataSet:
    """
    Dataset "D1" with 10 ACTIVE records r1..r10 under closed batch B0 (key 5000)
    """
    return populate(repo)


def read_records(repo: TickleRepo, dataset: DataSet) -> list[Record]:
    """Read every record of dataset in id order"""
    with repo.session():
        with repo.get_records_in_dataset(dataset) as records:
            return list(records)


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture(scope="session")
def test_env_vars() -> dict[str, str]:
    """
    Read test environment variables

    This fixture parses config/test.env without touching os.environ; apply
    the values with monkeypatch where a test needs them.
    """
    from dotenv import dotenv_values

    env_path = os.path.join(
        os.path.dirname(os.path.dirname(__file__)),
        "config",
        "test.env"
    )

    if not os.path.exists(env_path):
        return {}
    return {key: value for key, value in dotenv_values(env_path).items() if value is not None}


# =======================
# HELPER FIXTURES
# =======================

@pytest.fixture(scope="function")
def pool_factory(postgres_container):
    """Build unopened pools against the test container"""
    return lambda **kwargs: make_pool(postgres_container, **kwargs)


@pytest.fixture(scope="function")
def populate_dataset(repo):
    """Create further populated datasets, see populate()"""
    return lambda **kwargs: populate(repo, **kwargs)


@pytest.fixture(scope="function")
def records_of(repo):
    """Read every record of a dataset in id order"""
    return lambda dataset: read_records(repo, dataset)
