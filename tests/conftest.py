import pytest

from crawlstore.storage import Storage


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "state" / "crawl.sqlite")


@pytest.fixture
def store(db_path):
    s = Storage(db_path)
    s.init()
    yield s
    s.close()
