from collections import defaultdict
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from segment_api.app.core.config import Settings
from segment_api.app.core.db import ConnectionPool, init_db
from segment_api.app.main import create_app
from segment_api.app.storage.segment_store import SegmentStore


class FakeStorage:
    """In-memory stand-in for ``SegmentStore`` that records every call.

    Assign an exception to ``errors[<method name>]`` to make that method
    raise it.
    """

    def __init__(self):
        self.calls = defaultdict(list)
        self.errors = {}
        self.segments = {}

    def _call(self, name, *args):
        self.calls[name].append(args)
        if name in self.errors:
            raise self.errors[name]

    def create_segment(self, name):
        self._call("create_segment", name)

    def delete_segment(self, name):
        self._call("delete_segment", name)

    def add_user_to_segment(self, user_id, segments):
        self._call("add_user_to_segment", user_id, segments)

    def delete_user_from_segment(self, user_id, segments):
        self._call("delete_user_from_segment", user_id, segments)

    def get_user_segments(self, user_id):
        self._call("get_user_segments", user_id)
        return list(self.segments.get(user_id, []))


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "segments.db")


@pytest.fixture
def pool(db_path) -> Iterator[ConnectionPool]:
    pool = ConnectionPool(db_path, size=3, timeout=5)
    init_db(pool)
    yield pool
    pool.dispose()


@pytest.fixture
def store(pool) -> SegmentStore:
    return SegmentStore(pool)


@pytest.fixture
def query(pool):
    """Run a read-only query against the test database and return all rows."""

    def run(sql, params=()):
        with pool.connection() as conn:
            return [tuple(row) for row in conn.execute(sql, params).fetchall()]

    return run


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def client(db_path) -> Iterator[TestClient]:
    app = create_app(Settings(database_url=db_path, db_pool_size=2, db_timeout=5))
    with TestClient(app) as client:
        yield client
