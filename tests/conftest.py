"""Shared fixtures."""

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from entity_graph.database import Database
from entity_graph.service import GraphService


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of a throwaway SQLite database."""
    return tmp_path / "graph.db"


@pytest.fixture
def database(db_path: Path) -> Iterator[Database]:
    """A fresh database with the schema applied."""
    db = Database(db_path, pool_size=3, timeout=5.0)
    yield db
    db.close()


@pytest.fixture
def service(database: Database) -> GraphService:
    """Graph service over the fresh database, without the keep-alive probe."""
    return GraphService(database)


@pytest.fixture
def count_rows(database: Database) -> Callable[..., int]:
    """Count rows in a table directly, bypassing the stores."""

    def count(table: str, where: str = "1 = 1", params: tuple = ()) -> int:
        with database.connection() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {table} WHERE {where}", params).fetchone()[0]

    return count
