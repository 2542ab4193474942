import os
import sqlite3

import pytest

from crawlstore.errors import QueryError, SchemaError, StoreClosedError, StoreConnectionError
from crawlstore.storage import Storage


def test_init_creates_parent_directory(db_path):
    s = Storage(db_path)
    s.init()
    try:
        assert os.path.exists(db_path)
    finally:
        s.close()


def test_init_twice_keeps_store_usable(store):
    store.visited(1)
    store.add_request(b"a")
    store.init()
    assert store.is_visited(1)
    assert store.queue_size() == 1


def test_init_reports_unopenable_path(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    s = Storage(str(blocker / "crawl.sqlite"))
    with pytest.raises(StoreConnectionError):
        s.init()
    assert not s.db.is_open


def test_init_reports_schema_failure(db_path):
    os.makedirs(os.path.dirname(db_path))
    conn = sqlite3.connect(db_path)
    conn.execute("CREATE TABLE cookies (id INTEGER PRIMARY KEY, host TEXT NOT NULL, cookies TEXT NOT NULL)")
    conn.executemany("INSERT INTO cookies (host, cookies) VALUES (?, ?)",
                     [("a.com", "k=1"), ("a.com", "k=2")])
    conn.commit()
    conn.close()

    s = Storage(db_path)
    try:
        with pytest.raises(SchemaError):
            s.init()
    finally:
        s.close()


def test_clear_decommissions_until_init(store):
    store.visited(7)
    store.clear()
    with pytest.raises(QueryError):
        store.is_visited(7)
    with pytest.raises(QueryError):
        store.get_request()
    with pytest.raises(QueryError):
        store.set_cookies("a.com", "k=v")


def test_clear_twice_is_harmless(store):
    store.clear()
    store.clear()


def test_clear_then_init_gives_empty_working_store(store):
    store.visited(1)
    store.set_cookies("a.com", "k=v")
    store.add_request(b"payload")

    store.clear()
    store.init()

    assert store.visited_count() == 0
    assert store.cookie_count() == 0
    assert store.queue_size() == 0
    assert not store.is_visited(1)
    store.add_request(b"again")
    assert store.get_request() == b"again"


def test_reset_empties_store(store):
    store.visited(3)
    store.add_request(b"x")
    store.reset()
    assert store.visited_count() == 0
    assert store.queue_size() == 0
    store.visited(3)
    assert store.is_visited(3)


def test_operations_after_close_fail_cleanly(store):
    store.close()
    with pytest.raises(StoreClosedError):
        store.visited(1)
    with pytest.raises(StoreClosedError):
        store.cookies("a.com")
    with pytest.raises(StoreClosedError):
        store.get_request()
    with pytest.raises(QueryError):
        store.queue_size()
    store.close()


def test_state_survives_reopen(db_path):
    with Storage(db_path) as s:
        s.visited(11)
        s.set_cookies("a.com", "k=v")
        s.add_request(b"first")
        s.add_request(b"second")

    with Storage(db_path) as s:
        assert s.is_visited(11)
        assert s.cookies("a.com") == "k=v"
        assert s.get_request() == b"first"
        assert s.queue_size() == 1


def test_init_after_close_reopens(store):
    store.add_request(b"kept")
    store.close()
    store.init()
    assert store.get_request() == b"kept"


def test_from_config(tmp_path):
    s = Storage.from_config({"db_path": tmp_path / "c.sqlite", "timeout_sec": "5"})
    assert s.path == str(tmp_path / "c.sqlite")
    assert s.db.timeout == 5.0


def _legacy_cookie_table(db_path, rows):
    os.makedirs(os.path.dirname(db_path), exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.execute("CREATE TABLE cookies (id INTEGER PRIMARY KEY, host TEXT, cookies TEXT)")
    conn.execute("CREATE INDEX idx_cookies ON cookies (host)")
    conn.executemany("INSERT INTO cookies (host, cookies) VALUES (?, ?)", rows)
    conn.commit()
    conn.close()


def test_init_adds_unique_host_index_to_older_cookie_table(db_path):
    _legacy_cookie_table(db_path, [("a.com", "k=1")])
    with Storage(db_path) as s:
        s.set_cookies("a.com", "k=2")
        s.set_cookies("b.com", "x=1")
        assert s.cookies("a.com") == "k=2"
        assert s.cookie_count() == 2


def test_null_cookie_string_from_older_table_reads_empty(db_path):
    _legacy_cookie_table(db_path, [("a.com", None)])
    with Storage(db_path) as s:
        assert s.cookies("a.com") == ""
        assert s.cookies("b.com") is None
