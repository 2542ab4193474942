"""
Utility Functions for Crawl State Storage

This module provides various utility functions and classes for:
- Computing stable work-item identifiers
- Mapping unsigned 64-bit identifiers onto SQLite integers
- Shared-read / exclusive-write locking
"""

import hashlib
import threading
from contextlib import contextmanager

_U64 = 1 << 64
_I64_MAX = (1 << 63) - 1


def request_id(url: str, method: str = 'GET', body: bytes = b'') -> int:
    """
    Calculate a stable 64-bit identifier for a request.

    Args:
        url (str): Request URL, already normalized by the crawler
        method (str): HTTP method
        body (bytes): Request body, if any

    Returns:
        int: Unsigned 64-bit value taken from the SHA-256 digest

    Example:
        >>> request_id('https://a.com/') == request_id('https://a.com/', 'get')
        True
    """
    h = hashlib.sha256()
    h.update(method.upper().encode('ascii', 'ignore'))
    h.update(b' ')
    h.update(url.encode('utf-8', 'ignore'))
    h.update(body)
    return int.from_bytes(h.digest()[:8], 'big')


def to_signed64(value: int) -> int:
    """
    Map an unsigned 64-bit value onto the signed range SQLite stores.

    Raises:
        ValueError: If value is outside [0, 2**64)
    """
    if not 0 <= value < _U64:
        raise ValueError(f"request id {value} is not an unsigned 64-bit integer")
    return value - _U64 if value > _I64_MAX else value


class RWLock:
    """
    Readers-writer lock: many concurrent readers or one writer.

    Features:
    - Writers are preferred; once a writer waits, new readers queue behind it
    - Not re-entrant; a thread must not take the write side twice
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0           # Threads currently holding the read side
        self._writer = False        # Whether a writer holds the lock
        self._writers_waiting = 0

    def acquire_read(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self):
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self):
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
