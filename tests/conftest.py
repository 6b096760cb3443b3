"""Test configuration and fixtures."""

from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from dbmodelgen.associations import AssociationsCache
from dbmodelgen.config import MetadataConfig

SCHEMA_SQL = [
    """
    CREATE TABLE races (
        race_id INTEGER PRIMARY KEY,
        name VARCHAR(80) NOT NULL,
        description TEXT
    )
    """,
    """
    CREATE TABLE units (
        unit_id INTEGER PRIMARY KEY,
        race_id INTEGER REFERENCES races (race_id),
        name VARCHAR(80) NOT NULL UNIQUE,
        strength INTEGER NOT NULL DEFAULT 10
    )
    """,
    "CREATE TABLE authors (id INTEGER PRIMARY KEY, name TEXT NOT NULL)",
    "CREATE TABLE books (id INTEGER PRIMARY KEY, title TEXT NOT NULL)",
    """
    CREATE TABLE authors_books (
        author_id INTEGER NOT NULL,
        book_id INTEGER NOT NULL,
        PRIMARY KEY (author_id, book_id)
    )
    """,
    """
    CREATE TABLE data_types (
        id INTEGER PRIMARY KEY,
        price DECIMAL(7, 2),
        created DATETIME,
        flag BOOLEAN NOT NULL DEFAULT 0,
        payload BLOB,
        shape GEOMETRY
    )
    """,
    """
    CREATE TABLE indices (
        id INTEGER PRIMARY KEY,
        first_name TEXT,
        last_name TEXT,
        email TEXT
    )
    """,
    "CREATE INDEX idx_full_name ON indices (last_name, first_name)",
    "CREATE UNIQUE INDEX idx_email ON indices (email)",
    """
    CREATE TABLE nodes (
        id INTEGER PRIMARY KEY,
        parent_id INTEGER REFERENCES nodes (id),
        label TEXT
    )
    """,
    "CREATE VIEW race_names AS SELECT name FROM races",
]

ASSOCIATIONS_TEXT = """\
# cardinality,leftKey,rightKey,leftTable,rightTable,joinTable,leftPropName,rightPropName
1:N,race_id,race_id,races,units
N:N,author_id,book_id,authors,books,authors_books
"""


@pytest.fixture
def sqlite_url(tmp_path) -> str:
    """A file-backed SQLite database holding the sample schema."""
    url = f"sqlite:///{tmp_path / 'sample.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        for statement in SCHEMA_SQL:
            conn.execute(text(statement))
    engine.dispose()
    return url


@pytest.fixture
def sqlite_engine(sqlite_url) -> Engine:
    engine = create_engine(sqlite_url)
    yield engine
    engine.dispose()


@pytest.fixture
def metadata_config() -> MetadataConfig:
    return MetadataConfig(indices=True)


@pytest.fixture
def associations_file(tmp_path) -> str:
    path = tmp_path / "associations.csv"
    path.write_text(ASSOCIATIONS_TEXT, encoding="utf-8")
    return str(path)


@pytest.fixture
def associations_cache() -> AssociationsCache:
    return AssociationsCache()


class FakeResult:
    def __init__(self, rows: List[Dict[str, Any]]):
        self._rows = rows

    def mappings(self):
        return self

    def all(self) -> List[Dict[str, Any]]:
        return list(self._rows)


class FakeConnection:
    """Stands in for a server connection: returns canned rows and records every query."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self.rows = rows or []
        self.executed: List[tuple] = []

    def execute(self, statement, params=None):
        self.executed.append((str(statement), params))
        return FakeResult(self.rows)


@pytest.fixture
def fake_connection():
    return FakeConnection
