"""Shared test fixtures."""

import pytest

from sqlitekit import Database, Query


@pytest.fixture
def db():
    """In-memory database, released when the test ends."""
    with Database(":memory:") as conn:
        yield conn


@pytest.fixture
def db_path(tmp_path):
    """Path for a file-backed database shared between connections."""
    return str(tmp_path / "shared.db")


@pytest.fixture
def table(db):
    """Table ``t(a, b)`` holding (1, 'x') and (2, 'y')."""
    db.execute(
        """
        CREATE TABLE t (a INTEGER, b TEXT);
        INSERT INTO t VALUES (1, 'x');
        INSERT INTO t VALUES (2, 'y');
        """
    )
    return db


@pytest.fixture
def fetch_all():
    """Run a query and return every row as a tuple."""

    def _fetch(conn, sql):
        with Query(conn, sql) as query:
            return [row.values() for row in query]

    return _fetch
