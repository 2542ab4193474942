"""
Database Module for Crawl State Storage

This module wraps the single SQLite connection shared by every part of the
crawl state store. It handles:
- Opening and pinging the database file
- Parameterized statement execution with error translation
- Explicit write transactions for multi-statement operations
- Serializing access to the shared connection across threads
"""

import sqlite3, os, threading, logging
from contextlib import contextmanager
from typing import Optional

from .errors import QueryError, StoreClosedError, StoreConnectionError

logger = logging.getLogger(__name__)


class DB:
    """
    Thread-safe wrapper around one SQLite connection.

    Provides methods for:
    - Opening, pinging and closing the connection
    - Running single statements (each one atomic on its own)
    - Running several statements as one IMMEDIATE transaction
    """

    def __init__(self, path: str, timeout: float = 30):
        """
        Prepare the wrapper without touching the file system.

        Args:
            path (str): Path to the SQLite database file, or ":memory:".
                       The parent directory is created on open().
            timeout (float): Seconds sqlite waits on a locked database file
        """
        self.path = path
        self.timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()  # One statement or transaction at a time

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self):
        """
        Open the connection if needed and verify it answers.

        The connection runs in autocommit mode (isolation_level=None) so every
        statement outside transaction() commits on its own.

        Raises:
            StoreConnectionError: If the file cannot be opened or pinged
        """
        with self._lock:
            if self._conn is not None:
                return
            directory = os.path.dirname(self.path)
            try:
                if directory and self.path != ':memory:':
                    os.makedirs(directory, exist_ok=True)
                conn = sqlite3.connect(self.path, timeout=self.timeout,
                                       isolation_level=None, check_same_thread=False)
            except (sqlite3.Error, OSError) as e:
                logger.error(f"unable to open db file {self.path}: {e}")
                raise StoreConnectionError(f"unable to open db file {self.path}: {e}") from e
            try:
                conn.execute('SELECT 1').fetchone()
            except sqlite3.Error as e:
                conn.close()
                logger.error(f"db init failure for {self.path}: {e}")
                raise StoreConnectionError(f"db init failure for {self.path}: {e}") from e
            self._conn = conn
            logger.info(f"Opened crawl state database {self.path}")

    def close(self):
        """Close the connection. Calling it again is a no-op."""
        with self._lock:
            if self._conn is None:
                return
            conn, self._conn = self._conn, None
            conn.close()
            logger.info(f"Closed crawl state database {self.path}")

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreClosedError(f"database {self.path} is closed")
        return self._conn

    def execute(self, sql: str, params=(), error=QueryError) -> int:
        """
        Run one statement and return the number of rows it changed.

        Args:
            sql (str): Statement text with ? placeholders
            params (tuple): Values bound to the placeholders
            error (type): Exception class raised on engine failure

        Raises:
            StoreClosedError: If the connection is closed
            QueryError: (or `error`) If sqlite rejects the statement
        """
        with self._lock:
            conn = self._require_conn()
            try:
                return conn.execute(sql, params).rowcount
            except sqlite3.Error as e:
                logger.error(f"Database error in {sql.split()[0]}: {e}")
                raise error(f"{e} (statement: {sql})") from e

    def query_one(self, sql: str, params=()) -> Optional[tuple]:
        """
        Run a query and return its first row, or None if it produced no rows.

        Raises:
            StoreClosedError: If the connection is closed
            QueryError: If sqlite rejects the query
        """
        with self._lock:
            conn = self._require_conn()
            try:
                return conn.execute(sql, params).fetchone()
            except sqlite3.Error as e:
                logger.error(f"Database error in query: {e}")
                raise QueryError(f"{e} (statement: {sql})") from e

    @contextmanager
    def transaction(self):
        """
        Context manager running its body as one IMMEDIATE transaction.

        The write lock on the database file is taken at BEGIN, so a
        select-then-delete inside the block cannot interleave with another
        writer on any connection. The internal lock is held for the whole
        block, which keeps other threads' statements out of it. Commits on
        normal exit and rolls back if the body raises.

        Yields:
            sqlite3.Connection: The connection to run statements on
        """
        with self._lock:
            conn = self._require_conn()
            try:
                conn.execute('BEGIN IMMEDIATE')
            except sqlite3.Error as e:
                logger.error(f"Database error starting transaction: {e}")
                raise QueryError(f"unable to begin transaction: {e}") from e
            try:
                yield conn
            except sqlite3.Error as e:
                _rollback(conn)
                logger.error(f"Database error in transaction: {e}")
                raise QueryError(str(e)) from e
            except BaseException:
                _rollback(conn)
                raise
            try:
                conn.execute('COMMIT')
            except sqlite3.Error as e:
                _rollback(conn)
                logger.error(f"Database error committing transaction: {e}")
                raise QueryError(f"unable to commit transaction: {e}") from e


def _rollback(conn: sqlite3.Connection):
    # sqlite may already have ended the transaction on a failed statement
    if conn.in_transaction:
        conn.execute('ROLLBACK')
