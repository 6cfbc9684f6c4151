"""
Integration test fixtures — PostgreSQL testcontainer and schema setup.

Provides a real PostgreSQL instance for each test session via testcontainers.
The schema is created by the production `ensure_schema`, so the tests
exercise the same DDL the service runs at startup. Each test gets a clean
database via truncation.
"""

from __future__ import annotations

from collections.abc import Iterator

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

from evisa_lifecycle.adapters.repository import ensure_schema

TRUNCATE_ALL = """
TRUNCATE applications, documents, visa_types, application_sequences;
"""


def _psycopg_url(container: PostgresContainer) -> str:
    return container.get_connection_url().replace("postgresql+psycopg2", "postgresql")


@pytest.fixture(scope="session")
def postgres_container() -> Iterator[PostgresContainer]:
    """Start a PostgreSQL container for the entire test session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        result = ensure_schema(_psycopg_url(pg))
        assert result.is_success(), str(result.error())
        yield pg


@pytest.fixture()
def dsn(postgres_container: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN and truncate all tables before each test."""
    connection_url = _psycopg_url(postgres_container)
    with psycopg.connect(connection_url) as conn:
        conn.execute(TRUNCATE_ALL)
        conn.commit()
    return connection_url
