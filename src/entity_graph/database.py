"""Pooled SQLite storage with an atomic unit of work."""

import queue
import sqlite3
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

import structlog

from entity_graph.errors import FatalError

logger = structlog.get_logger()

SCHEMA = """
CREATE TABLE IF NOT EXISTS entities (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL CHECK (length(title) > 0),
    content TEXT,
    priority INTEGER,
    owner_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_entities_owner ON entities(owner_id, created_at);

CREATE TABLE IF NOT EXISTS capabilities (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL CHECK (length(type) > 0),
    data TEXT NOT NULL DEFAULT '{}',
    entity_id TEXT NOT NULL REFERENCES entities(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_capabilities_entity ON capabilities(entity_id);
CREATE INDEX IF NOT EXISTS idx_capabilities_type ON capabilities(type);

CREATE TABLE IF NOT EXISTS links (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL CHECK (length(type) > 0),
    source_id TEXT NOT NULL REFERENCES entities(id) ON DELETE CASCADE,
    target_id TEXT NOT NULL REFERENCES entities(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    CHECK (source_id <> target_id),
    UNIQUE (source_id, target_id, type)
);
CREATE INDEX IF NOT EXISTS idx_links_target ON links(target_id);
"""


def new_id() -> str:
    """Generate an opaque record identifier."""
    return uuid.uuid4().hex


def utcnow() -> str:
    """Current UTC time as a sortable ISO string."""
    return datetime.now(UTC).isoformat(timespec="microseconds")


def parse_timestamp(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _icontains(haystack: str | None, needle: str | None) -> int:
    """Unicode-aware case-insensitive substring test, registered as ``icontains``."""
    if haystack is None or needle is None:
        return 0
    return int(needle.casefold() in haystack.casefold())


class Database:
    """A bounded pool of SQLite connections sharing one database file.

    ``transaction()`` is the unit of work used for every write. It is reentrant
    per thread: a nested ``transaction()`` or ``connection()`` joins the
    enclosing unit of work, so stores composed inside one operation commit or
    roll back together.
    """

    def __init__(self, path: str | Path, pool_size: int = 5, timeout: float = 30.0) -> None:
        """Open the database and create the schema if needed.

        Args:
            path: SQLite database file
            pool_size: Maximum number of pooled connections
            timeout: Seconds to wait for a free connection or a database lock
        """
        if pool_size < 1:
            raise ValueError("pool_size must be at least 1")

        self.path = Path(path)
        self.pool_size = pool_size
        self.timeout = timeout
        self._pool: queue.Queue[sqlite3.Connection] = queue.Queue(maxsize=pool_size)
        self._opened = 0
        self._lock = threading.Lock()
        self._local = threading.local()
        self._closed = False

        logger.debug("Opening database", path=str(self.path), pool_size=pool_size)
        with self.connection() as conn:
            try:
                conn.executescript(SCHEMA)
            except sqlite3.Error as e:
                raise FatalError(f"Failed to initialise schema: {e}") from e
        logger.info("Database ready", path=str(self.path))

    def _open(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self.path),
            timeout=self.timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.create_function("icontains", 2, _icontains, deterministic=True)
        return conn

    def _acquire(self) -> sqlite3.Connection:
        if self._closed:
            raise FatalError("Database is closed")

        try:
            return self._pool.get_nowait()
        except queue.Empty:
            pass

        with self._lock:
            if self._opened < self.pool_size:
                try:
                    conn = self._open()
                except sqlite3.Error as e:
                    raise FatalError(f"Failed to open database {self.path}: {e}") from e
                self._opened += 1
                logger.debug("Opened pooled connection", opened=self._opened)
                return conn

        try:
            return self._pool.get(timeout=self.timeout)
        except queue.Empty as e:
            logger.error("Connection pool exhausted", pool_size=self.pool_size, timeout=self.timeout)
            raise FatalError(f"No database connection available after {self.timeout}s") from e

    def _release(self, conn: sqlite3.Connection) -> None:
        if self._closed:
            conn.close()
            return
        self._pool.put_nowait(conn)

    @property
    def in_transaction(self) -> bool:
        return getattr(self._local, "conn", None) is not None

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection for reads, joining the thread's active transaction if any."""
        active = getattr(self._local, "conn", None)
        if active is not None:
            yield active
            return

        conn = self._acquire()
        try:
            yield conn
        except sqlite3.Error as e:
            raise FatalError(f"Storage failure: {e}") from e
        finally:
            self._release(conn)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed writes as one atomic unit.

        Commits when the block exits normally and rolls back on any exception.
        Driver errors are re-raised as ``FatalError``.
        """
        active = getattr(self._local, "conn", None)
        if active is not None:
            yield active
            return

        conn = self._acquire()
        self._local.conn = conn
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except BaseException as e:
            if conn.in_transaction:
                try:
                    conn.execute("ROLLBACK")
                except sqlite3.Error as rollback_error:
                    logger.error("Rollback failed", error=str(rollback_error), cause=str(e))
                else:
                    logger.debug("Transaction rolled back", error=str(e))
            if isinstance(e, sqlite3.Error):
                raise FatalError(f"Storage failure: {e}") from e
            raise
        finally:
            self._local.conn = None
            self._release(conn)

    def ping(self) -> None:
        """Run a no-op query to check the store is reachable."""
        with self.connection() as conn:
            conn.execute("SELECT 1").fetchone()

    def close(self) -> None:
        """Close every idle pooled connection; busy ones close on release."""
        self._closed = True
        while True:
            try:
                conn = self._pool.get_nowait()
            except queue.Empty:
                break
            conn.close()
        logger.debug("Database closed", path=str(self.path))
