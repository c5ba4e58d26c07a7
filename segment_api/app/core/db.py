"""
SQLite connection pool and schema initialisation.

A single ``ConnectionPool`` is created at application start and shared by
every request.  It wraps SQLAlchemy's ``QueuePool`` around plain ``sqlite3``
connections: the pool bounds and recycles connections while the store keeps
issuing raw SQL.  Every borrowed connection carries a deadline; a SQLite
progress handler aborts whatever statement is running once the deadline has
passed or the pool has been disposed, so in-flight work is abandoned instead
of finishing behind the caller's back.

The schema is created by ``init_db``, which keeps the applied migration
versions in the ``migrations`` table and only runs the ones that are
missing.  Running it on every start is safe.
"""

import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy import event
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.pool import QueuePool

logger = logging.getLogger(__name__)

# Number of SQLite virtual machine instructions between deadline checks.
PROGRESS_STEPS = 1000


def get_database_path(db_url: str) -> str:
    """Resolve ``DATABASE_URL`` to an absolute file path.

    Relative paths are resolved against the current working directory.
    In-memory databases are refused: every pooled connection would get
    its own private database.
    """
    if db_url.startswith("sqlite:///"):
        db_url = db_url[len("sqlite:///"):]
    if db_url in {"", ":memory:"} or db_url.startswith("file::memory:"):
        raise ValueError("DATABASE_URL must point to a database file")
    return str(Path(db_url).expanduser().resolve())


class ConnectionPool:
    """Bounded pool of SQLite connections usable from worker threads.

    Waiting longer than ``timeout`` for a free connection raises
    ``sqlalchemy.exc.TimeoutError``; borrowing from a disposed pool raises
    ``sqlalchemy.exc.InvalidRequestError``.
    """

    def __init__(self, database: str, size: int = 5, timeout: float = 5.0) -> None:
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self.database = get_database_path(database)
        self.size = size
        self.timeout = timeout
        self._deadlines: Dict[int, float] = {}
        self._closed = False
        self._pool = QueuePool(
            lambda: sqlite3.connect(self.database, timeout=timeout, check_same_thread=False),
            pool_size=size,
            max_overflow=0,
            timeout=timeout,
            reset_on_return="rollback",
        )
        event.listen(self._pool, "connect", self._on_connect)

    @property
    def closed(self) -> bool:
        return self._closed

    def _on_connect(self, dbapi_connection: sqlite3.Connection, connection_record) -> None:
        dbapi_connection.row_factory = sqlite3.Row
        # REFERENCES clauses are ignored unless enabled on every connection.
        dbapi_connection.execute("PRAGMA foreign_keys = ON")
        dbapi_connection.set_progress_handler(
            lambda: self._should_abort(dbapi_connection), PROGRESS_STEPS
        )

    def _should_abort(self, conn: sqlite3.Connection) -> int:
        if self._closed:
            return 1
        deadline = self._deadlines.get(id(conn))
        return int(deadline is not None and time.monotonic() > deadline)

    @contextmanager
    def connection(self, timeout: Optional[float] = None) -> Iterator[sqlite3.Connection]:
        """Borrow a connection for the duration of the block.

        ``timeout`` bounds the statements run on the connection; it
        defaults to the pool timeout.  Uncommitted work is rolled back
        when the connection goes back to the pool.
        """
        if self._closed:
            raise InvalidRequestError("connection pool is disposed")
        fairy = self._pool.connect()
        conn = fairy.dbapi_connection
        self._deadlines[id(conn)] = time.monotonic() + (self.timeout if timeout is None else timeout)
        try:
            yield conn
        finally:
            self._deadlines.pop(id(conn), None)
            if self._closed:
                fairy.invalidate()
            else:
                fairy.close()

    def dispose(self) -> None:
        """Close idle connections; busy ones are closed when returned."""
        self._closed = True
        self._pool.dispose()
        logger.info("Disposed database pool for %s", self.database)


# Each entry is (version, script).  Append new migrations with an
# incremented version number; never edit an applied one.
MIGRATIONS: List[Tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS segment (
            name TEXT NOT NULL PRIMARY KEY
        );

        -- Memberships go away together with their segment.
        CREATE TABLE IF NOT EXISTS users_in_segment (
            user_id INTEGER NOT NULL,
            segment TEXT NOT NULL REFERENCES segment(name) ON DELETE CASCADE,
            UNIQUE (user_id, segment)
        );

        CREATE INDEX IF NOT EXISTS idx_users_in_segment_segment ON users_in_segment(segment);
        """,
    ),
]


def init_db(pool: ConnectionPool) -> None:
    """Create the schema and apply pending migrations.

    Creates the ``migrations`` table if it does not exist, reads the
    current schema version and applies newer entries of ``MIGRATIONS``
    in order.  Calling it again is a no-op.
    """
    with pool.connection() as conn:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("CREATE TABLE IF NOT EXISTS migrations (version INTEGER PRIMARY KEY)")
        row = conn.execute("SELECT MAX(version) AS version FROM migrations").fetchone()
        current_version = row["version"] if row and row["version"] is not None else 0

        for version, sql in MIGRATIONS:
            if version > current_version:
                conn.executescript(sql)
                conn.execute("INSERT INTO migrations (version) VALUES (?)", (version,))
                conn.commit()
                logger.info("Applied schema migration %s", version)
                current_version = version
