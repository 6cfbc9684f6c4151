"""
Acceptance test fixtures — PostgreSQL testcontainer for end-to-end tests.

Same pattern as the integration fixtures, scoped separately so the
acceptance suite can run on its own.
"""

from __future__ import annotations

from collections.abc import Iterator

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

from evisa_lifecycle.adapters.repository import ensure_schema
from tests.integration.conftest import TRUNCATE_ALL


@pytest.fixture(scope="session")
def acceptance_pg() -> Iterator[PostgresContainer]:
    """Start a PostgreSQL container for the acceptance test session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        dsn = pg.get_connection_url().replace("postgresql+psycopg2", "postgresql")
        result = ensure_schema(dsn)
        assert result.is_success(), str(result.error())
        yield pg


@pytest.fixture()
def acceptance_dsn(acceptance_pg: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN and truncate all tables before each test."""
    connection_url = acceptance_pg.get_connection_url().replace("postgresql+psycopg2", "postgresql")
    with psycopg.connect(connection_url) as conn:
        conn.execute(TRUNCATE_ALL)
        conn.commit()
    return connection_url
