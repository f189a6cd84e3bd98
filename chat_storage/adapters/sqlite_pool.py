"""SQLite connection provider.

SQLite has no server-side pool: every checkout opens a fresh connection to the
database file, which keeps connections thread-confined. Connections run in
autocommit mode; multi-statement writes go through `transaction()`.
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from chat_storage.adapters.dialect import SQLDialect
from chat_storage.config.logging_config import get_logger
from chat_storage.domain.exceptions import RepositoryError

logger = get_logger(__name__)


class SQLiteConnectionPool:
    """Connection provider for a SQLite database file."""

    dialect = SQLDialect.SQLITE

    def __init__(self, db_path: str, *, busy_timeout_seconds: float = 5.0) -> None:
        """Validate the database file and switch it to WAL journaling.

        Args:
            db_path: Path to SQLite database file
            busy_timeout_seconds: How long a call waits on a locked database
        """
        if db_path == ":memory:":
            raise RepositoryError(
                "In-memory SQLite is not supported: each checkout opens a new connection"
            )
        if busy_timeout_seconds <= 0:
            raise RepositoryError("busy_timeout_seconds must be positive")

        self.db_path = db_path
        self._busy_timeout_seconds = busy_timeout_seconds

        # Ensure data directory exists
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = self._open()
            try:
                # WAL lets readers keep a consistent snapshot while a writer commits
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("SELECT 1")
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise RepositoryError(f"SQLite validation query failed: {exc}") from exc

        logger.info(
            "sqlite_pool_initialized",
            db_path=self.db_path,
            busy_timeout_seconds=self._busy_timeout_seconds,
        )

    def _open(self) -> sqlite3.Connection:
        return sqlite3.connect(
            self.db_path,
            timeout=self._busy_timeout_seconds,
            isolation_level=None,
            check_same_thread=False,
        )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection and ensure cleanup."""
        conn: sqlite3.Connection | None = None
        try:
            conn = self._open()
            yield conn
        except sqlite3.Error as exc:
            if conn is not None and conn.in_transaction:
                try:
                    conn.rollback()
                except sqlite3.Error:
                    logger.warning(
                        "sqlite_connection_rollback_failed",
                        db_path=self.db_path,
                        exc_info=True,
                    )
            raise RepositoryError(f"SQLite error: {exc}") from exc
        finally:
            if conn is not None:
                conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements as one all-or-nothing write transaction."""
        with self.connection() as conn:
            # IMMEDIATE takes the write lock up front
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except Exception:
                if conn.in_transaction:
                    conn.rollback()
                raise
            conn.commit()

    def close(self) -> None:
        """Nothing is pooled; present for interface parity."""
        logger.info("sqlite_pool_closed", db_path=self.db_path)
