"""
Crawl State Storage

Durable state for a crawler that must survive restarts:
- visited: which requests were already processed (dedup)
- cookies: one cookie string per host for the HTTP layer
- queue: pending request payloads in FIFO order

All three live in one SQLite file behind a single shared connection. Two lock
domains guard the parts with read-modify-write hazards: a readers-writer lock
for cookies and a plain lock for claiming the oldest queue entry.

Queue delivery is at-most-once. get_request() deletes the entry it returns in
the same transaction that reads it; if the caller dies before finishing the
work, the entry is gone and must be re-enqueued by the caller.
"""

import logging
import threading
from typing import Optional

from .db import DB
from .errors import QueryError, SchemaError
from .utils import RWLock, to_signed64

logger = logging.getLogger(__name__)

# Database schema definition
SCHEMA = (
    'CREATE TABLE IF NOT EXISTS visited('
    ' id INTEGER PRIMARY KEY,'
    ' requestID INTEGER NOT NULL,'     # unsigned 64-bit id stored as signed
    ' visited INT NOT NULL DEFAULT 1'
    ')',
    'CREATE INDEX IF NOT EXISTS idx_visited ON visited(requestID)',
    'CREATE TABLE IF NOT EXISTS cookies('
    ' id INTEGER PRIMARY KEY,'
    ' host TEXT NOT NULL,'
    ' cookies TEXT NOT NULL'
    ')',
    'CREATE UNIQUE INDEX IF NOT EXISTS idx_cookies_host ON cookies(host)',  # one row per host
    'CREATE TABLE IF NOT EXISTS queue('
    ' id INTEGER PRIMARY KEY AUTOINCREMENT,'   # ids never reused: FIFO order
    ' data BLOB NOT NULL'
    ')',
)

TABLES = ('visited', 'cookies', 'queue')


class Storage:
    """
    SQLite-backed crawl state: visited ledger, cookie jar and request queue.

    One instance owns one connection; pass it to every crawler component that
    needs state rather than sharing it through globals. All methods block the
    calling thread for the duration of the I/O.
    """

    def __init__(self, path: str, timeout: float = 30):
        """
        Args:
            path (str): SQLite file path (":memory:" works for one process)
            timeout (float): Seconds to wait on a locked database file
        """
        self.path = path
        self.db = DB(path, timeout=timeout)
        self._cookie_lock = RWLock()
        self._queue_lock = threading.Lock()

    @classmethod
    def from_config(cls, cfg: dict) -> "Storage":
        return cls(str(cfg['db_path']), timeout=float(cfg.get('timeout_sec', 30)))

    def __enter__(self):
        self.init()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ---- lifecycle

    def init(self):
        """
        Open the database if needed and create any missing tables and indexes.

        Safe to call repeatedly; existing data is kept.

        Raises:
            StoreConnectionError: If the database cannot be opened
            SchemaError: If a CREATE statement fails
        """
        self.db.open()
        for stmt in SCHEMA:
            self.db.execute(stmt, error=SchemaError)
        logger.debug(f"Schema ready in {self.path}")

    def clear(self):
        """
        Drop every table. The store is unusable until init() runs again.

        Dropping tables that are already gone is not an error, so clearing
        twice is harmless.
        """
        with self._cookie_lock.write(), self._queue_lock:
            for table in TABLES:
                self.db.execute(f'DROP TABLE IF EXISTS {table}', error=SchemaError)
        logger.info(f"Cleared crawl state in {self.path}")

    def reset(self):
        """Drop all state and recreate empty tables."""
        self.clear()
        self.init()

    def close(self):
        with self._cookie_lock.write(), self._queue_lock:
            self.db.close()

    # ---- visited ledger

    def visited(self, request_id: int):
        """
        Record that a request was processed.

        Each call appends a row; only existence is ever queried, so repeated
        calls for the same id are harmless.

        Raises:
            ValueError: If request_id is not an unsigned 64-bit integer
            QueryError: On engine failure
        """
        self.db.execute('INSERT INTO visited(requestID, visited) VALUES (?, 1)',
                        (to_signed64(request_id),))

    def is_visited(self, request_id: int) -> bool:
        row = self.db.query_one('SELECT COUNT(*) FROM visited WHERE requestID = ?',
                                (to_signed64(request_id),))
        return bool(row and row[0] >= 1)

    def visited_count(self) -> int:
        return self._count('visited')

    # ---- cookie jar

    def set_cookies(self, host: str, cookies: str):
        """
        Store the cookie string for host, replacing any previous value.

        Writers are serialized so two responses from the same host arriving
        together cannot interleave; the last write wins.

        Args:
            host (str): Host (netloc) the cookies belong to
            cookies (str): Serialized cookie string

        Raises:
            QueryError: On engine failure
        """
        with self._cookie_lock.write():
            self.db.execute(
                'INSERT INTO cookies(host, cookies) VALUES (?, ?) '
                'ON CONFLICT(host) DO UPDATE SET cookies = excluded.cookies',
                (host, cookies)
            )

    def cookies(self, host: str) -> Optional[str]:
        """
        Get the cookie string stored for host.

        Returns:
            str or None: The stored string (possibly empty), or None if the
                        host has no record
        """
        with self._cookie_lock.read():
            row = self.db.query_one("SELECT COALESCE(cookies, '') FROM cookies WHERE host = ?",
                                    (host,))
        return row[0] if row else None

    def cookie_count(self) -> int:
        return self._count('cookies')

    # ---- request queue

    def add_request(self, payload: bytes):
        """
        Append a payload to the queue.

        Raises:
            TypeError: If payload is not bytes-like
            QueryError: On engine failure
        """
        if not isinstance(payload, (bytes, bytearray, memoryview)):
            raise TypeError(f"queue payload must be bytes, not {type(payload).__name__}")
        self.db.execute('INSERT INTO queue(data) VALUES (?)', (bytes(payload),))

    def get_request(self) -> Optional[bytes]:
        """
        Remove and return the oldest payload in the queue.

        The select and the delete run in one IMMEDIATE transaction under the
        queue lock, so each entry is handed to exactly one caller.

        Returns:
            bytes or None: The payload (b"" for an empty one), or None if the
                          queue is empty

        Raises:
            QueryError: On engine failure
        """
        with self._queue_lock, self.db.transaction() as conn:
            row = conn.execute('SELECT id, data FROM queue ORDER BY id ASC LIMIT 1').fetchone()
            if row is None:
                return None
            entry_id, data = row
            conn.execute('DELETE FROM queue WHERE id = ?', (entry_id,))
        logger.debug(f"Claimed queue entry {entry_id} ({len(data)} bytes)")
        return bytes(data)

    def queue_size(self) -> int:
        """Point-in-time number of queued entries; use for monitoring only."""
        return self._count('queue')

    def _count(self, table: str) -> int:
        row = self.db.query_one(f'SELECT COUNT(*) FROM {table}')
        if row is None:
            raise QueryError(f"COUNT on {table} returned no row")
        return int(row[0])
