"""
Local SQLite Database

Single database file holding the rolling metrics window and the
service catalog. Every operation opens its own short-lived connection,
so the collection loop and request handlers never share a handle.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from ..common.exceptions import StorageError
from ..common.logging_setup import get_service_logger

logger = get_service_logger("storage.database")

SCHEMA = """
CREATE TABLE IF NOT EXISTS metrics_samples (
    ts INTEGER PRIMARY KEY,
    cpu REAL NOT NULL,
    ram REAL NOT NULL,
    disk REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS services (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    url TEXT NOT NULL,
    description TEXT,
    icon TEXT,
    category TEXT,
    open_in_new_tab INTEGER NOT NULL DEFAULT 1,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);
"""


class Database:
    """
    SQLite database for local storage.

    Features:
    - WAL journal so the once-per-second writer does not block readers
    - Automatic table creation
    - transaction() for atomic multi-statement writes
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Cannot create data directory {self.db_path.parent}: {e}"
            ) from e

        self._init_db()

    def _init_db(self) -> None:
        """Create database tables if they don't exist."""
        with self.connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)
            conn.commit()

        logger.info(f"Database initialized: {self.db_path}")

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection that is closed on exit."""
        # timeout=10.0: fail on lock contention instead of blocking forever
        conn = sqlite3.connect(str(self.db_path), timeout=10.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA synchronous=NORMAL")

        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run statements atomically.

        Commits when the block exits normally, rolls back and re-raises
        otherwise.
        """
        with self.connection() as conn:
            try:
                yield conn
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
