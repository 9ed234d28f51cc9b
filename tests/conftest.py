import logging
from logging import Logger

import pytest

from logger.basic_logger import setup_logger


# ----- log double that keeps what was said, per level -----
class CaptureLog:
    def __init__(self):
        self.records = []

    def _add(self, level, msg, *a, **k):
        self.records.append((level, msg % a if a else msg))

    def debug(self, msg, *a, **k):
        self._add("debug", msg, *a)

    def info(self, msg, *a, **k):
        self._add("info", msg, *a)

    def warning(self, msg, *a, **k):
        self._add("warning", msg, *a)

    def error(self, msg, *a, **k):
        self._add("error", msg, *a)

    def messages(self, level=None):
        return [m for lvl, m in self.records if level is None or lvl == level]


@pytest.fixture
def capture_log():
    return CaptureLog()


# ----- transport double -----
class FakeEndpoint:
    """
    pages = {
      "https://api/x?a=1": [b'{"results": [...]}', ...],
    }
    Bodies may be bytes or an Exception instance to raise from fetch().
    """

    def __init__(self, base_url, pages=None):
        self.base_url = base_url
        self._pages = {k: list(v) for k, v in (pages or {}).items()}
        self._target = base_url
        self.fetched = []
        self.sleeps = 0

    def set_target_url(self, url):
        self._target = url

    def current_effective_url(self):
        return self._target

    def fetch(self):
        self.fetched.append(self._target)
        body = self._pages[self._target].pop(0)
        if isinstance(body, Exception):
            raise body
        return body

    def sleep(self):
        self.sleeps += 1


@pytest.fixture
def fake_endpoint():
    return FakeEndpoint


# ----- destination double -----
class FakeSink:
    def __init__(self, columns=None, kind="sqlite"):
        self.columns = list(columns or [])
        self.kind = kind
        self.schema = None
        self.batches = []
        self.statements = []
        self.queries = []
        self.rows = []
        self.closed = False

    def column_names(self, table):
        return list(self.columns)

    def storage_engine_kind(self, table):
        return self.kind

    def qualified(self, table):
        return table

    def upsert_clause(self, columns):
        return "REPLACE INTO", ""

    def execute_batch(self, sql, params):
        self.batches.append((sql, params))
        return len(params)

    def execute(self, sql):
        self.statements.append(sql)
        return 0

    def query(self, sql):
        self.queries.append(sql)
        return FakeCursor(self.rows)

    def close(self):
        self.closed = True


class FakeCursor:
    def __init__(self, rows):
        self._rows = list(rows)

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None


@pytest.fixture
def fake_sink():
    return FakeSink


@pytest.fixture
def fake_cursor():
    return FakeCursor


@pytest.fixture(scope="session", autouse=True)
def log() -> Logger:
    log = setup_logger()
    log.setLevel(logging.DEBUG)
    return log
